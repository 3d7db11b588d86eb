"""AES-256-GCM payload encryption (12-byte random nonce, 128-bit tag)."""

from typing import Optional

from pydantic import ValidationError

from fogroom.common.errors import DecodeError, DecryptionError
from fogroom.common.protocol import EncryptedMessage, EncryptedPayload, Payload
from fogroom.common.utils import b64d, b64e
from fogroom.crypto.backend import CryptoBackend, get_backend
from fogroom.crypto.keys import load_secret_key

# 96-bit nonce, the GCM standard size
IV_LENGTH = 12


class PayloadCipher:
    """
    Encrypts and decrypts payloads for a single room.

    The decoded key is cached on the instance only; each session owns its
    own cipher, so nothing is shared between rooms.
    """

    def __init__(self, secret_key: str, backend: Optional[CryptoBackend] = None):
        self._key = load_secret_key(secret_key)
        self._backend = backend or get_backend()

    def encrypt(self, payload: Payload) -> EncryptedPayload:
        """
        Encrypts the canonical JSON encoding of payload.
        A new nonce is drawn on every call; callers can never supply one.
        """
        iv = self._backend.random_bytes(IV_LENGTH)
        ciphertext = self._backend.aead_encrypt(self._key, iv, payload.canonical_bytes())
        return EncryptedPayload(ciphertext=b64e(ciphertext), iv=b64e(iv))

    def decrypt(self, ciphertext: str, iv: str) -> Payload:
        """
        Decrypts and parses a payload.

        Raises DecodeError for malformed base64 or JSON and DecryptionError
        when authentication fails.
        """
        ct_bytes = b64d(ciphertext)
        iv_bytes = b64d(iv)
        if len(iv_bytes) != IV_LENGTH:
            raise DecryptionError("message could not be decrypted")

        plaintext = self._backend.aead_decrypt(self._key, iv_bytes, ct_bytes)
        try:
            return Payload.model_validate_json(plaintext)
        except ValidationError as e:
            raise DecodeError("decrypted data is not a valid payload") from e

    def decrypt_message(self, message: EncryptedMessage) -> Payload:
        return self.decrypt(message.ciphertext, message.iv)


def encrypt(payload: Payload, secret_key: str, backend: Optional[CryptoBackend] = None) -> EncryptedPayload:
    """One-shot encryption; the key is imported for this call only."""
    return PayloadCipher(secret_key, backend).encrypt(payload)


def decrypt(ciphertext: str, iv: str, secret_key: str, backend: Optional[CryptoBackend] = None) -> Payload:
    """One-shot decryption; the key is imported for this call only."""
    return PayloadCipher(secret_key, backend).decrypt(ciphertext, iv)
