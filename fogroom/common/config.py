"""Runtime configuration loaded from the environment (and an optional .env file)."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


SERVER_URL = os.getenv("FOGROOM_SERVER", "http://127.0.0.1:8787").rstrip("/")
DEFAULT_NAME = os.getenv("FOGROOM_DEFAULT_NAME", "Anonymous")

# Intervals are configured in milliseconds, used in seconds.
POLL_INTERVAL = _int_env("FOGROOM_POLL_INTERVAL", 5000) / 1000
REQUEST_TIMEOUT = _int_env("FOGROOM_TIMEOUT", 10000) / 1000
PAGE_LIMIT = _int_env("FOGROOM_PAGE_LIMIT", 100)

IDENTITY_PATH = Path(
    os.getenv("FOGROOM_IDENTITY_PATH", str(Path.home() / ".fogroom" / "identity.json"))
).expanduser()

LOG_LEVEL = os.getenv("FOGROOM_LOG_LEVEL", "INFO").upper()
