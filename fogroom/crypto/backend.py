"""Crypto capability interface + the `cryptography`-package implementation."""

import hashlib
import os
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature, InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from fogroom.common.errors import DecodeError, DecryptionError

# P-256 scalars are 32 bytes; a raw (IEEE P1363) signature is r || s.
P256_COORD_SIZE = 32
RAW_SIGNATURE_SIZE = 2 * P256_COORD_SIZE


class CryptoBackend:
    """
    Everything the protocol needs from a crypto provider.
    The cipher, signer and session code only talk to this interface.
    """

    def random_bytes(self, n: int) -> bytes:
        raise NotImplementedError

    def aead_encrypt(self, key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
        raise NotImplementedError

    def aead_decrypt(self, key: bytes, nonce: bytes, data: bytes) -> bytes:
        raise NotImplementedError

    def generate_signing_keypair(self) -> Tuple[bytes, bytes]:
        """Returns (PKCS#8 private DER, SPKI public DER)."""
        raise NotImplementedError

    def sign(self, private_der: bytes, data: bytes) -> bytes:
        raise NotImplementedError

    def verify(self, public_der: bytes, signature: bytes, data: bytes) -> bool:
        raise NotImplementedError

    def sha256(self, data: bytes) -> bytes:
        raise NotImplementedError


class CryptographyBackend(CryptoBackend):
    """AES-256-GCM and ECDSA P-256/SHA-256 on top of the `cryptography` package."""

    def random_bytes(self, n: int) -> bytes:
        return os.urandom(n)

    def aead_encrypt(self, key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
        return AESGCM(key).encrypt(nonce, plaintext, None)

    def aead_decrypt(self, key: bytes, nonce: bytes, data: bytes) -> bytes:
        try:
            return AESGCM(key).decrypt(nonce, data, None)
        except (InvalidTag, ValueError) as e:
            # Same error for bad key, bad tag, bad nonce and truncated data
            raise DecryptionError("message could not be decrypted") from e

    def generate_signing_keypair(self) -> Tuple[bytes, bytes]:
        private_key = ec.generate_private_key(ec.SECP256R1())
        private_der = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )
        public_der = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
        return private_der, public_der

    def sign(self, private_der: bytes, data: bytes) -> bytes:
        """
        Signs data with ECDSA P-256 / SHA-256.
        Returns the raw r || s form used by WebCrypto, not DER.
        """
        private_key = _load_private_key(private_der)
        der_signature = private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der_signature)
        return r.to_bytes(P256_COORD_SIZE, "big") + s.to_bytes(P256_COORD_SIZE, "big")

    def verify(self, public_der: bytes, signature: bytes, data: bytes) -> bool:
        """
        Verifies a raw r || s signature.
        Returns True if valid, False otherwise; a malformed key raises DecodeError.
        """
        public_key = _load_public_key(public_der)
        if len(signature) != RAW_SIGNATURE_SIZE:
            return False
        r = int.from_bytes(signature[:P256_COORD_SIZE], "big")
        s = int.from_bytes(signature[P256_COORD_SIZE:], "big")
        try:
            public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
            return True
        except InvalidSignature:
            return False

    def sha256(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()


def _load_private_key(private_der: bytes) -> ec.EllipticCurvePrivateKey:
    try:
        key = serialization.load_der_private_key(private_der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodeError("invalid private key") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
        raise DecodeError("private key is not an ECDSA P-256 key")
    return key


def _load_public_key(public_der: bytes) -> ec.EllipticCurvePublicKey:
    try:
        key = serialization.load_der_public_key(public_der)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodeError("invalid public key") from e
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(key.curve, ec.SECP256R1):
        raise DecodeError("public key is not an ECDSA P-256 key")
    return key


_default_backend: Optional[CryptoBackend] = None


def get_backend() -> CryptoBackend:
    """Returns the process-wide default backend."""
    global _default_backend
    if _default_backend is None:
        _default_backend = CryptographyBackend()
    return _default_backend
