"""RoomSession: poll, dedup, decrypt, verify and send for one room."""

import asyncio
import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, FrozenSet, List, Optional, Union

from fogroom.common import config
from fogroom.common.errors import DecodeError, DecryptionError, FogroomError, SessionStateError, TransportError
from fogroom.common.protocol import (
    EncryptedMessage,
    IdentityKeyPair,
    MessageType,
    Payload,
    PlaintextMessage,
    SendResult,
)
from fogroom.crypto import sign
from fogroom.crypto.aes import PayloadCipher
from fogroom.crypto.backend import CryptoBackend
from fogroom.crypto.keys import is_valid_room_id

logger = logging.getLogger(__name__)

# --- Events ---

@dataclass(frozen=True)
class MessageEvent:
    kind: ClassVar[str] = "message"
    message: PlaintextMessage


@dataclass(frozen=True)
class DecryptErrorEvent:
    kind: ClassVar[str] = "decrypt_error"
    message_id: str
    error: FogroomError
    timestamp: int = 0


@dataclass(frozen=True)
class TransportErrorEvent:
    kind: ClassVar[str] = "error"
    error: TransportError


@dataclass(frozen=True)
class ClearedEvent:
    """The room was emptied by someone; local state has been reset."""
    kind: ClassVar[str] = "cleared"
    dropped: int = 0


SessionEvent = Union[MessageEvent, DecryptErrorEvent, TransportErrorEvent, ClearedEvent]
EVENT_KINDS = ("message", "decrypt_error", "error", "cleared")

Listener = Callable[[SessionEvent], None]


class SessionState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


@dataclass
class _Subscription:
    queue: "asyncio.Queue[SessionEvent]"
    dropped: int = field(default=0)


class RoomSession:
    """
    A polling/sending loop bound to one room and (optionally) one identity.

    State machine: IDLE -> POLLING -> STOPPED. STOPPED is terminal; build a
    new session to resume. The dedup set and high-water mark live only in
    this instance and are discarded on stop().

    All state changes happen in synchronous sections on the event loop that
    runs the session, which serializes poll, send and mark_seen. The session
    is not thread-safe; from other threads use loop.call_soon_threadsafe.
    """

    def __init__(
        self,
        api,
        room_id: str,
        secret_key: str,
        name: Optional[str] = None,
        identity: Optional[IdentityKeyPair] = None,
        poll_interval: Optional[float] = None,
        page_limit: Optional[int] = None,
        backend: Optional[CryptoBackend] = None
    ):
        if not is_valid_room_id(room_id):
            raise DecodeError("room id must be 32 lowercase hex characters")

        self.room_id = room_id
        self.name = name or config.DEFAULT_NAME
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.page_limit = page_limit or config.PAGE_LIMIT
        self.state = SessionState.IDLE

        self._api = api
        self._cipher = PayloadCipher(secret_key, backend)
        self._identity = identity
        self._backend = backend

        self._seen_ids = set()
        self._last_timestamp = 0
        self._poll_in_flight = False
        self._task: Optional[asyncio.Task] = None

        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._subscriptions: List[_Subscription] = []

    def __repr__(self) -> str:
        return f"<RoomSession room={self.room_id} state={self.state.value} seen={len(self._seen_ids)}>"

    async def __aenter__(self) -> "RoomSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # --- Read-only state ---

    @property
    def seen_ids(self) -> FrozenSet[str]:
        return frozenset(self._seen_ids)

    @property
    def last_timestamp(self) -> int:
        return self._last_timestamp

    @property
    def signed(self) -> bool:
        return self._identity is not None

    @property
    def fingerprint(self) -> Optional[str]:
        """Fingerprint of the identity this session signs with, if any."""
        if self._identity is None:
            return None
        return sign.fingerprint(self._identity.public_key, self._backend)

    # --- Event delivery ---

    def on(self, kind: str, callback: Listener) -> Listener:
        """Registers a callback for one event kind. Returns the callback."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind {kind!r}, expected one of {EVENT_KINDS}")
        self._listeners[kind].append(callback)
        return callback

    def off(self, kind: str, callback: Listener) -> None:
        try:
            self._listeners[kind].remove(callback)
        except ValueError:
            pass

    def subscribe(self, maxsize: int = 100) -> "asyncio.Queue[SessionEvent]":
        """
        Returns a bounded queue receiving every event in emission order.
        When the consumer falls behind the oldest queued event is dropped.
        """
        subscription = _Subscription(asyncio.Queue(maxsize=maxsize))
        self._subscriptions.append(subscription)
        return subscription.queue

    def _emit(self, event: SessionEvent) -> None:
        for callback in list(self._listeners[event.kind]):
            try:
                callback(event)
            except Exception:
                logger.exception("Listener for %r raised; continuing", event.kind)

        for sub in self._subscriptions:
            if sub.queue.maxsize > 0 and sub.queue.full():
                sub.queue.get_nowait()
                sub.dropped += 1
                logger.warning("Event queue full, dropped oldest event (%d so far)", sub.dropped)
            sub.queue.put_nowait(event)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Polls once immediately, then keeps polling every poll_interval seconds."""
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"cannot start a session that is {self.state.value}")
        self.state = SessionState.POLLING
        logger.info("Session started for room %s (every %.1fs)", self.room_id, self.poll_interval)

        await self.poll()
        # stop() may have been called while the first poll was outstanding
        if self.state is SessionState.POLLING:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"fogroom-poll-{self.room_id[:8]}"
            )

    def stop(self) -> None:
        """
        Stops polling and discards session state. Safe at any time and
        idempotent; a response still in flight is dropped when it arrives.
        """
        if self.state is SessionState.STOPPED:
            return
        self.state = SessionState.STOPPED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._reset_state()
        logger.info("Session stopped for room %s", self.room_id)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.poll_interval
        while self.state is SessionState.POLLING:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            if self.state is not SessionState.POLLING:
                break
            try:
                await self.poll()
            except Exception:
                logger.exception("Poll raised unexpectedly for room %s; next tick still runs", self.room_id)

            next_tick += self.poll_interval
            now = loop.time()
            if now > next_tick:
                # A slow poll swallowed one or more ticks; skip rather than pile up
                missed = int((now - next_tick) // self.poll_interval) + 1
                next_tick += missed * self.poll_interval
                logger.debug("Poll overran, skipped %d tick(s)", missed)

    # --- Poll cycle ---

    async def poll(self) -> int:
        """
        Runs one poll cycle and returns the number of message events emitted.

        Transport failures are reported as an "error" event, never raised.
        """
        if self.state is SessionState.STOPPED:
            return 0
        if self._poll_in_flight:
            logger.debug("Poll already in flight for room %s, skipping", self.room_id)
            return 0

        self._poll_in_flight = True
        try:
            try:
                page = await self._api.get_messages(
                    self.room_id, after=self._last_timestamp, limit=self.page_limit
                )
            except TransportError as e:
                if self.state is not SessionState.STOPPED:
                    logger.warning("Poll failed for room %s: %s", self.room_id, e)
                    self._emit(TransportErrorEvent(e))
                return 0

            if self.state is SessionState.STOPPED:
                logger.debug("Discarding poll response received after stop()")
                return 0

            if page.message_count == 0 and (self._seen_ids or self._last_timestamp > 0):
                dropped = len(self._seen_ids)
                self._reset_state()
                logger.info("Room %s was cleared, reset %d seen id(s)", self.room_id, dropped)
                self._emit(ClearedEvent(dropped))
                return 0

            return self._process(page.messages)
        finally:
            self._poll_in_flight = False

    def _process(self, messages: List[EncryptedMessage]) -> int:
        emitted = 0
        for msg in messages:
            # A listener may stop the session mid-page
            if self.state is SessionState.STOPPED:
                break
            if msg.id in self._seen_ids:
                continue

            event = self._open(msg)
            # Recorded even on failure, so a bad message is not retried forever
            self._seen_ids.add(msg.id)
            self._last_timestamp = max(self._last_timestamp, msg.timestamp)

            self._emit(event)
            if isinstance(event, MessageEvent):
                emitted += 1
        return emitted

    def _open(self, msg: EncryptedMessage) -> Union[MessageEvent, DecryptErrorEvent]:
        try:
            payload = self._cipher.decrypt_message(msg)
        except (DecodeError, DecryptionError) as e:
            logger.info("Could not decrypt message %s: %s", msg.id, e)
            return DecryptErrorEvent(msg.id, e, msg.timestamp)
        return MessageEvent(sign.verify_payload(payload, msg.id, msg.timestamp, self._backend))

    def _reset_state(self) -> None:
        self._seen_ids.clear()
        self._last_timestamp = 0

    # --- Outbound ---

    def build_payload(self, content: str, type: MessageType = "text") -> Payload:
        """Signed when the session has an identity, unsigned otherwise."""
        if self._identity is not None:
            return sign.sign_with_identity(self.name, content, self._identity, type, self._backend)
        return Payload(sender=self.name, content=content, type=type)

    async def send(self, content: str, type: MessageType = "text", mark_seen: bool = False) -> SendResult:
        """
        Encrypts and submits a message, returning the server-assigned id and
        timestamp. Failures propagate and leave the dedup state untouched.

        With mark_seen=True the returned id is registered at once, for
        callers that already rendered the message locally.
        """
        if self.state is SessionState.STOPPED:
            raise SessionStateError("cannot send on a stopped session")

        encrypted = self._cipher.encrypt(self.build_payload(content, type))
        result = await self._api.send_message(self.room_id, encrypted.ciphertext, encrypted.iv)
        logger.debug("Sent message %s to room %s", result.id, self.room_id)

        if mark_seen:
            self.mark_seen(result.id, result.timestamp)
        return result

    def mark_seen(self, message_id: str, timestamp: int) -> bool:
        """
        Registers an id the caller has already displayed, so polling will not
        deliver it again. Returns False if the session had already processed
        it (the caller then holds a duplicate and should drop its own copy).
        """
        if self.state is SessionState.STOPPED or message_id in self._seen_ids:
            return False
        self._seen_ids.add(message_id)
        self._last_timestamp = max(self._last_timestamp, timestamp)
        return True

    # --- One-shot operations ---

    async def get_history(self, after: int = 0, limit: Optional[int] = None) -> List[PlaintextMessage]:
        """
        Fetches, decrypts and verifies one page without touching session
        state. Undecryptable items are reported as decrypt_error and left
        out. Transport errors are raised.
        """
        page = await self._api.get_messages(self.room_id, after=after, limit=limit or self.page_limit)
        messages = []
        for msg in page.messages:
            event = self._open(msg)
            if isinstance(event, MessageEvent):
                messages.append(event.message)
            else:
                self._emit(event)
        messages.sort(key=lambda m: m.timestamp)
        return messages

    async def clear_messages(self) -> None:
        """Deletes every message in the room for everyone, then resets local state."""
        await self._api.clear_messages(self.room_id)
        if self.state is not SessionState.STOPPED:
            self._reset_state()
        logger.info("Cleared room %s", self.room_id)
