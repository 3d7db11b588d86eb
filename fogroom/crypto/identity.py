"""The local signing identity: one key pair per installation, shared by all rooms."""

import logging
import threading
from typing import Optional

from fogroom.common.protocol import IdentityKeyPair, MessageType, Payload
from fogroom.crypto import sign
from fogroom.crypto.backend import CryptoBackend, get_backend
from fogroom.storage.keystore import KeyStore

logger = logging.getLogger(__name__)


class IdentityManager:
    """
    Loads the identity from a KeyStore on first use, creating and saving
    one if the store is empty. The store is read once per manager and
    written only when a pair is created or explicitly reset.
    """

    def __init__(self, keystore: KeyStore, backend: Optional[CryptoBackend] = None):
        self._keystore = keystore
        self._backend = backend or get_backend()
        self._identity: Optional[IdentityKeyPair] = None
        self._lock = threading.Lock()

    def get_or_create(self) -> IdentityKeyPair:
        with self._lock:
            if self._identity is None:
                identity = self._keystore.load()
                if identity is None:
                    identity = sign.generate_identity_keypair(self._backend)
                    self._keystore.save(identity)
                    logger.info("Created new identity [%s]", sign.fingerprint(identity.public_key, self._backend))
                self._identity = identity
            return self._identity

    def reset(self) -> IdentityKeyPair:
        """Replaces the stored identity with a freshly generated one."""
        with self._lock:
            identity = sign.generate_identity_keypair(self._backend)
            self._keystore.save(identity)
            self._identity = identity
        logger.info("Identity reset, new fingerprint [%s]", sign.fingerprint(identity.public_key, self._backend))
        return identity

    def fingerprint(self) -> str:
        return sign.fingerprint(self.get_or_create().public_key, self._backend)

    def sign(self, sender: str, content: str, type: MessageType = "text") -> Payload:
        return sign.sign_with_identity(sender, content, self.get_or_create(), type, self._backend)
