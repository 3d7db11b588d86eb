"""ECDSA P-256 SHA-256 sign/verify over "sender:content", plus key fingerprints."""

import logging
from typing import Optional

from fogroom.common.errors import DecodeError
from fogroom.common.protocol import IdentityKeyPair, MessageType, Payload, PlaintextMessage
from fogroom.common.utils import b64d, b64e, bytes_to_hex
from fogroom.crypto.backend import CryptoBackend, get_backend

logger = logging.getLogger(__name__)

FINGERPRINT_BYTES = 2


def signing_input(sender: str, content: str) -> bytes:
    """
    The exact bytes that get signed.

    Only sender and content are bound; type, id and timestamp are not.
    """
    return f"{sender}:{content}".encode("utf-8")


def generate_identity_keypair(backend: Optional[CryptoBackend] = None) -> IdentityKeyPair:
    backend = backend or get_backend()
    private_der, public_der = backend.generate_signing_keypair()
    return IdentityKeyPair(public_key=b64e(public_der), private_key=b64e(private_der))


def fingerprint(public_key: str, backend: Optional[CryptoBackend] = None) -> str:
    """
    First two bytes of SHA-256 over the raw SPKI bytes, as 4 hex chars.
    A display aid for eyeballing identities, not a security boundary.
    """
    backend = backend or get_backend()
    digest = backend.sha256(b64d(public_key))
    return bytes_to_hex(digest[:FINGERPRINT_BYTES])


def sign(private_key: str, data: bytes, backend: Optional[CryptoBackend] = None) -> str:
    """Signs data with a base64 PKCS#8 private key. Returns a base64 signature."""
    backend = backend or get_backend()
    return b64e(backend.sign(b64d(private_key), data))


def verify(public_key: str, data: bytes, signature: str, backend: Optional[CryptoBackend] = None) -> bool:
    """
    Verifies a base64 signature with a base64 SPKI public key.
    Returns True if valid, False otherwise; it never raises on bad input.
    """
    backend = backend or get_backend()
    try:
        return backend.verify(b64d(public_key), b64d(signature), data)
    except DecodeError as e:
        logger.debug("Signature check failed on malformed input: %s", e)
        return False


def sign_payload(
    sender: str,
    content: str,
    private_key: str,
    public_key: str,
    type: MessageType = "text",
    backend: Optional[CryptoBackend] = None
) -> Payload:
    """Builds a payload carrying the signature and the signer's public key inline."""
    signature = sign(private_key, signing_input(sender, content), backend)
    return Payload(
        sender=sender,
        content=content,
        type=type,
        public_key=public_key,
        signature=signature
    )


def sign_with_identity(
    sender: str,
    content: str,
    identity: IdentityKeyPair,
    type: MessageType = "text",
    backend: Optional[CryptoBackend] = None
) -> Payload:
    return sign_payload(sender, content, identity.private_key, identity.public_key, type, backend)


def verify_payload(
    payload: Payload,
    message_id: str,
    timestamp: int,
    backend: Optional[CryptoBackend] = None
) -> PlaintextMessage:
    """
    Turns a decrypted payload into a PlaintextMessage.

    A payload missing either publicKey or signature is unsigned: verified is
    False and no fingerprint is computed. A bad signature is also just
    verified=False; this function does not raise for either case.
    """
    verified = False
    key_fingerprint = None

    if payload.is_signed():
        verified = verify(
            payload.public_key,
            signing_input(payload.sender, payload.content),
            payload.signature,
            backend
        )
        try:
            key_fingerprint = fingerprint(payload.public_key, backend)
        except DecodeError:
            key_fingerprint = None

    return PlaintextMessage(
        id=message_id,
        sender=payload.sender,
        content=payload.content,
        timestamp=timestamp,
        type=payload.type,
        public_key=payload.public_key,
        fingerprint=key_fingerprint,
        verified=verified
    )
