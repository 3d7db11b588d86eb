"""Codec helpers: hex, base64 and URL-safe base64."""

import base64
import binascii
import re

from fogroom.common.errors import DecodeError

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")


def bytes_to_hex(b: bytes) -> str:
    """Lowercase hex, two characters per byte."""
    return b.hex()


def hex_to_bytes(s: str) -> bytes:
    if not isinstance(s, str) or len(s) % 2 != 0 or not _HEX_RE.match(s):
        raise DecodeError("invalid hex string")
    return bytes.fromhex(s)


def b64e(b: bytes) -> str:
    """Base64-encodes bytes into a padded string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """
    Base64-decodes a padded string into bytes.

    Decoding is strict: characters outside the standard alphabet or broken
    padding raise DecodeError instead of being silently dropped.
    """
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise DecodeError(f"invalid base64: {e}") from e


def b64url_e(b: bytes) -> str:
    """URL-safe base64 without padding (RFC 4648 section 5)."""
    return base64.urlsafe_b64encode(b).decode('ascii').rstrip('=')


def b64url_d(s: str) -> bytes:
    """Decodes unpadded URL-safe base64, restoring the padding first."""
    if not isinstance(s, str) or not _B64URL_RE.match(s) or len(s) % 4 == 1:
        raise DecodeError("invalid URL-safe base64")
    padded = s + '=' * (-len(s) % 4)
    try:
        return base64.b64decode(padded, altchars=b'-_', validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid URL-safe base64: {e}") from e
