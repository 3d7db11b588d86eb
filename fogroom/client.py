"""EphemeralChat: create rooms, join them by credentials or link, manage identity."""

import logging
from typing import List, Optional, Tuple

from fogroom.api import RoomApiClient
from fogroom.common import config
from fogroom.common.errors import DecodeError
from fogroom.common.links import build_link, parse_link
from fogroom.common.protocol import Credentials, RoomInfo
from fogroom.crypto.backend import CryptoBackend
from fogroom.crypto.identity import IdentityManager
from fogroom.crypto.keys import generate_credentials
from fogroom.session import RoomSession, SessionState
from fogroom.storage.keystore import FileKeyStore, KeyStore

logger = logging.getLogger(__name__)


class EphemeralChat:
    """
    Entry point for applications.

    One instance shares a single HTTP client and a single identity across
    every room it joins; sessions themselves share no state.
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        timeout: Optional[float] = None,
        keystore: Optional[KeyStore] = None,
        backend: Optional[CryptoBackend] = None,
        api: Optional[RoomApiClient] = None
    ):
        self.api = api or RoomApiClient(server_url, timeout)
        self.identity = IdentityManager(keystore if keystore is not None else FileKeyStore(), backend)
        self._backend = backend
        self._sessions: List[RoomSession] = []

    async def __aenter__(self) -> "EphemeralChat":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def create_room(self) -> Tuple[Credentials, RoomInfo]:
        """Generates fresh credentials and registers the room id with the service."""
        credentials = generate_credentials(self._backend)
        info = await self.api.create_room(credentials.room_id)
        logger.info("Created room %s", credentials.room_id)
        return credentials, info

    async def get_room_info(self, room_id: str) -> RoomInfo:
        return await self.api.get_room_info(room_id)

    async def delete_room(self, room_id: str) -> None:
        await self.api.delete_room(room_id)

    async def join(
        self,
        room_id: str,
        secret_key: str,
        name: Optional[str] = None,
        poll_interval: Optional[float] = None,
        signed: bool = True,
        start: bool = True
    ) -> RoomSession:
        """
        Checks that the room exists, then returns a session for it (started
        unless start=False). With signed=True every message carries a
        signature from the local identity, created on first use.
        """
        await self.api.get_room_info(room_id)

        identity = self.identity.get_or_create() if signed else None
        session = RoomSession(
            self.api,
            room_id,
            secret_key,
            name=name or config.DEFAULT_NAME,
            identity=identity,
            poll_interval=poll_interval,
            backend=self._backend
        )
        # Sessions the caller already stopped are forgotten here
        self._sessions = [s for s in self._sessions if s.state is not SessionState.STOPPED]
        self._sessions.append(session)
        if start:
            await session.start()
        return session

    async def join_link(self, url: str, **kwargs) -> RoomSession:
        credentials = parse_link(url)
        if credentials is None:
            raise DecodeError("not a room link")
        return await self.join(credentials.room_id, credentials.secret_key, **kwargs)

    def link_for(self, credentials: Credentials, origin: str) -> str:
        return build_link(origin, credentials.room_id, credentials.secret_key)

    async def close(self) -> None:
        """Stops every session started here and closes the HTTP client."""
        for session in self._sessions:
            session.stop()
        self._sessions.clear()
        await self.api.close()
