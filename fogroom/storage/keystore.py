"""Identity key pair persistence: JSON file in the home directory, or memory."""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from fogroom.common import config
from fogroom.common.protocol import IdentityKeyPair

logger = logging.getLogger(__name__)


class KeyStore:
    """Where an IdentityManager keeps its key pair."""

    def load(self) -> Optional[IdentityKeyPair]:
        raise NotImplementedError

    def save(self, identity: IdentityKeyPair) -> None:
        raise NotImplementedError


class MemoryKeyStore(KeyStore):
    """Keeps the pair in memory only; for tests and throwaway identities."""

    def __init__(self, identity: Optional[IdentityKeyPair] = None):
        self.identity = identity
        self.saves = 0

    def load(self) -> Optional[IdentityKeyPair]:
        return self.identity

    def save(self, identity: IdentityKeyPair) -> None:
        self.identity = identity
        self.saves += 1


class FileKeyStore(KeyStore):
    """
    Stores {"publicKey": ..., "privateKey": ...} as JSON.

    The directory is created 0700 and the file written 0600. A corrupt file
    is logged and treated as missing, so a new identity replaces it.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path).expanduser() if path is not None else config.IDENTITY_PATH

    def load(self) -> Optional[IdentityKeyPair]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = f.read()
            return IdentityKeyPair.model_validate_json(data)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable identity file %s: %s", self.path, e)
            return None

    def save(self, identity: IdentityKeyPair) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        # Atomic replace: temp file, then rename over the old one
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(identity.model_dump_json(by_alias=True, indent=2))
        os.replace(tmp_path, self.path)
        logger.debug("Identity saved to %s", self.path)
