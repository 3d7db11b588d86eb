"""Create (or show) the local signing identity used to sign chat messages."""

import argparse

from fogroom.common import config
from fogroom.common.logging_config import configure_logging
from fogroom.crypto.identity import IdentityManager
from fogroom.storage.keystore import FileKeyStore

def main():
    parser = argparse.ArgumentParser(description="Create or show the local identity key pair")
    parser.add_argument("--path", default=str(config.IDENTITY_PATH), help="Identity file (JSON)")
    parser.add_argument("--reset", action="store_true", help="Replace the existing identity with a new one")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else None)

    keystore = FileKeyStore(args.path)
    manager = IdentityManager(keystore)

    # 1. Load or create (or replace) the key pair
    if args.reset:
        manager.reset()
        print("Identity replaced. Others will see a new fingerprint for you.")
    else:
        manager.get_or_create()

    # 2. Show it
    print(f"Your identity fingerprint: [{manager.fingerprint()}]")
    print(f"Stored in: {keystore.path}")

if __name__ == "__main__":
    main()
