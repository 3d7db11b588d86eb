"""Room credential generation: random room id + AES-256 secret key."""

import re
from typing import Optional

from fogroom.common.errors import DecodeError
from fogroom.common.protocol import Credentials
from fogroom.common.utils import b64url_d, b64url_e, bytes_to_hex
from fogroom.crypto.backend import CryptoBackend, get_backend

# 128-bit room id, rendered as 32 hex chars
ROOM_ID_BYTES = 16
# AES-256 uses 32-byte keys
SECRET_KEY_BYTES = 32

ROOM_ID_RE = re.compile(r"^[a-f0-9]{32}$")


def generate_credentials(backend: Optional[CryptoBackend] = None) -> Credentials:
    """
    Draws a fresh room id and an independent secret key.
    No network or disk I/O happens here.
    """
    backend = backend or get_backend()
    room_id = bytes_to_hex(backend.random_bytes(ROOM_ID_BYTES))
    secret_key = b64url_e(backend.random_bytes(SECRET_KEY_BYTES))
    return Credentials(room_id=room_id, secret_key=secret_key)


def is_valid_room_id(room_id: str) -> bool:
    return isinstance(room_id, str) and ROOM_ID_RE.match(room_id) is not None


def load_secret_key(secret_key: str) -> bytes:
    """Decodes a URL-safe base64 secret key and checks it is 256 bits."""
    key = b64url_d(secret_key)
    if len(key) != SECRET_KEY_BYTES:
        raise DecodeError(f"secret key must be {SECRET_KEY_BYTES} bytes, got {len(key)}")
    return key
