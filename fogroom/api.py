"""Async aiohttp client for the room storage service (/api/rooms...)."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from fogroom.common import config
from fogroom.common.errors import ConflictError, NotFoundError, TransportError
from fogroom.common.protocol import MessagesPage, RoomInfo, SendResult

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Status code -> exception for the cases callers handle specifically
_STATUS_ERRORS: Dict[int, Type[TransportError]] = {
    404: NotFoundError,
    409: ConflictError,
}


class RoomApiClient:
    """
    Thin wrapper over the storage service endpoints.

    The service only ever sees room ids and opaque ciphertext. Every request
    is bounded by `timeout` seconds; any failure (network, timeout, non-2xx
    status, unexpected body) raises TransportError or one of its subclasses.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = (base_url or config.SERVER_URL).rstrip("/")
        self.timeout = config.REQUEST_TIMEOUT if timeout is None else timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RoomApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # --- Rooms ---

    async def create_room(self, room_id: str) -> RoomInfo:
        data = await self._request("POST", "/api/rooms", json_body={"roomId": room_id})
        return _parse(RoomInfo, data, "create room")

    async def get_room_info(self, room_id: str) -> RoomInfo:
        data = await self._request("GET", f"/api/rooms/{room_id}")
        return _parse(RoomInfo, data, "room info")

    async def delete_room(self, room_id: str) -> None:
        await self._request("DELETE", f"/api/rooms/{room_id}")

    # --- Messages ---

    async def send_message(self, room_id: str, ciphertext: str, iv: str) -> SendResult:
        data = await self._request(
            "POST",
            f"/api/rooms/{room_id}/messages",
            json_body={"ciphertext": ciphertext, "iv": iv}
        )
        return _parse(SendResult, data, "send message")

    async def get_messages(self, room_id: str, after: int = 0, limit: Optional[int] = None) -> MessagesPage:
        """
        Messages with timestamp > after, oldest first, plus the room's total
        message count. The ascending order is relied upon by sessions.
        """
        params = {"after": str(after), "limit": str(limit or config.PAGE_LIMIT)}
        data = await self._request("GET", f"/api/rooms/{room_id}/messages", params=params)
        return _parse(MessagesPage, data, "messages")

    async def clear_messages(self, room_id: str) -> None:
        await self._request("DELETE", f"/api/rooms/{room_id}/messages")

    async def health(self) -> bool:
        try:
            data = await self._request("GET", "/api/health")
        except TransportError as e:
            logger.info("Health check failed: %s", e)
            return False
        return isinstance(data, dict) and data.get("status") == "ok"

    # --- Transport ---

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> Any:
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                json=json_body,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                status = resp.status
                raw = await resp.read()
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {path} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not 200 <= status < 300:
            detail = _error_detail(raw.decode("utf-8", errors="replace"))
            error_cls = _STATUS_ERRORS.get(status, TransportError)
            logger.debug("%s %s -> %d %s", method, path, status, detail)
            raise error_cls(f"{method} {path} returned {status}: {detail}", status=status, detail=detail)

        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON", status=status) from e


def _error_detail(body: str) -> str:
    """The service reports errors as {"error": "..."}; fall back to the raw text."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip() or "no details"
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return body.strip() or "no details"


def _parse(model: Type[ModelT], data: Any, what: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TransportError(f"unexpected {what} response: {e.error_count()} invalid field(s)") from e
