import asyncio
import itertools
import re
import uuid

import pytest
from aiohttp import web

from fogroom.common.errors import ConflictError, NotFoundError, TransportError
from fogroom.common.protocol import EncryptedMessage, MessagesPage, RoomInfo, SendResult
from fogroom.crypto import aes
from fogroom.crypto.keys import generate_credentials

ROOM_RE = re.compile(r"^[a-f0-9]{32}$")
DAY_MS = 24 * 60 * 60 * 1000


class FakeRoomApi:
    """In-memory stand-in for RoomApiClient with the same coroutine methods."""

    def __init__(self):
        self.rooms = {}
        self.requests = []
        self.fail_with = None
        self.send_fails_with = None
        self.gate = None
        self.pages = []  # canned MessagesPage objects, served before real data
        self.failures = []  # exceptions raised by the next get_messages calls, one each
        self._clock = itertools.count(1000)

    def add_room(self, room_id):
        self.rooms.setdefault(room_id, [])

    def put(self, room_id, ciphertext, iv, timestamp=None, message_id=None):
        msg = EncryptedMessage(
            id=message_id or uuid.uuid4().hex,
            ciphertext=ciphertext,
            iv=iv,
            timestamp=timestamp if timestamp is not None else next(self._clock),
        )
        self.rooms[room_id].append(msg)
        return msg

    async def get_messages(self, room_id, after=0, limit=100):
        self.requests.append((after, limit))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if self.failures:
            raise self.failures.pop(0)
        if self.pages:
            return self.pages.pop(0)
        if room_id not in self.rooms:
            raise NotFoundError("room not found", status=404)
        stored = self.rooms[room_id]
        newer = sorted((m for m in stored if m.timestamp > after), key=lambda m: m.timestamp)
        return MessagesPage(messages=newer[:limit], message_count=len(stored))

    async def send_message(self, room_id, ciphertext, iv):
        if self.send_fails_with is not None:
            raise self.send_fails_with
        msg = self.put(room_id, ciphertext, iv)
        return SendResult(id=msg.id, timestamp=msg.timestamp)

    async def clear_messages(self, room_id):
        self.rooms[room_id] = []

    async def create_room(self, room_id):
        if room_id in self.rooms:
            raise ConflictError("room exists", status=409)
        self.add_room(room_id)
        return RoomInfo(room_id=room_id, created_at=0, expires_at=30 * DAY_MS)

    async def get_room_info(self, room_id):
        if room_id not in self.rooms:
            raise NotFoundError("room not found", status=404)
        return RoomInfo(room_id=room_id, created_at=0, expires_at=30 * DAY_MS,
                        message_count=len(self.rooms[room_id]))

    async def delete_room(self, room_id):
        self.rooms.pop(room_id, None)

    async def close(self):
        pass


@pytest.fixture
def credentials():
    return generate_credentials()


@pytest.fixture
def fake_api(credentials):
    api = FakeRoomApi()
    api.add_room(credentials.room_id)
    return api


@pytest.fixture
def seal(credentials):
    """Encrypts a payload under the room key, returning (ciphertext, iv)."""
    def _seal(payload, secret_key=None):
        encrypted = aes.encrypt(payload, secret_key or credentials.secret_key)
        return encrypted.ciphertext, encrypted.iv
    return _seal


def make_storage_app(delay=0, fail_status=None, raw_body=None):
    """aiohttp fake of the room storage service, mirroring its status codes."""
    rooms = {}
    clock = itertools.count(1_700_000_000_000)
    routes = web.RouteTableDef()

    def error(status, message):
        return web.json_response({"error": message}, status=status)

    @routes.get("/api/health")
    async def health(request):
        return web.json_response({"status": "ok", "timestamp": next(clock)})

    @routes.post("/api/rooms")
    async def create_room(request):
        body = await request.json()
        room_id = body.get("roomId", "")
        if not ROOM_RE.match(room_id):
            return error(400, "Invalid room ID format")
        if room_id in rooms:
            return error(409, "Room already exists")
        now = next(clock)
        rooms[room_id] = {"createdAt": now, "expiresAt": now + 30 * DAY_MS, "messages": []}
        return web.json_response({"roomId": room_id, "createdAt": now, "expiresAt": now + 30 * DAY_MS}, status=201)

    @routes.get("/api/rooms/{room_id}")
    async def room_info(request):
        room_id = request.match_info["room_id"]
        room = rooms.get(room_id)
        if room is None:
            return error(404, "Room not found")
        return web.json_response({
            "roomId": room_id,
            "createdAt": room["createdAt"],
            "expiresAt": room["expiresAt"],
            "messageCount": len(room["messages"]),
        })

    @routes.delete("/api/rooms/{room_id}")
    async def delete_room(request):
        rooms.pop(request.match_info["room_id"], None)
        return web.Response(status=204)

    @routes.post("/api/rooms/{room_id}/messages")
    async def send_message(request):
        room = rooms.get(request.match_info["room_id"])
        if room is None:
            return error(404, "Room not found")
        body = await request.json()
        if not body.get("ciphertext") or not body.get("iv"):
            return error(400, "Missing ciphertext or iv")
        msg = {"id": str(uuid.uuid4()), "ciphertext": body["ciphertext"], "iv": body["iv"], "timestamp": next(clock)}
        room["messages"].append(msg)
        return web.json_response({"id": msg["id"], "timestamp": msg["timestamp"]}, status=201)

    @routes.get("/api/rooms/{room_id}/messages")
    async def get_messages(request):
        if delay:
            await asyncio.sleep(delay)
        if fail_status:
            return error(fail_status, "Internal server error")
        if raw_body is not None:
            return web.Response(body=raw_body, content_type="application/json")
        room = rooms.get(request.match_info["room_id"])
        if room is None:
            return error(404, "Room not found")
        after = int(request.query.get("after", 0))
        limit = min(int(request.query.get("limit", 100)), 100)
        newer = [m for m in room["messages"] if m["timestamp"] > after]
        newer.sort(key=lambda m: m["timestamp"])
        return web.json_response({"messages": newer[:limit], "messageCount": len(room["messages"])})

    @routes.delete("/api/rooms/{room_id}/messages")
    async def clear_messages(request):
        room = rooms.get(request.match_info["room_id"])
        if room is not None:
            room["messages"] = []
        return web.Response(status=204)

    app = web.Application()
    app.add_routes(routes)
    return app


@pytest.fixture
def storage_app():
    """Factory: storage_app(delay=..., fail_status=..., raw_body=...) -> aiohttp Application."""
    return make_storage_app
