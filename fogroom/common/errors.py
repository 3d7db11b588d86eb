"""Exception taxonomy shared by the crypto core, the API client and sessions."""

from typing import Optional


class FogroomError(Exception):
    """Base class for every error raised by fogroom."""
    pass


class DecodeError(FogroomError):
    """Malformed hex, base64, JSON or key material."""
    pass


class DecryptionError(FogroomError):
    """
    Authenticated decryption failed.

    Raised for a wrong key and for tampered or truncated data alike; the two
    cases are indistinguishable to the caller.
    """
    pass


class TransportError(FogroomError):
    """Network failure, timeout or non-success HTTP status."""

    def __init__(self, message: str, status: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


class ConflictError(TransportError):
    """The room id is already taken (HTTP 409)."""
    pass


class NotFoundError(TransportError):
    """The room does not exist or has expired (HTTP 404)."""
    pass


class SessionStateError(FogroomError):
    """A RoomSession was asked to make an illegal state transition."""
    pass
