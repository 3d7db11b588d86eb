"""Share links: <origin>/#/chat/{roomId}/{secretKey} (and the legacy path form)."""

import re
from typing import Optional
from urllib.parse import urlsplit

from fogroom.common.protocol import Credentials

# Current form: the whole route lives in the fragment
_FRAGMENT_RE = re.compile(r"^/chat/([a-f0-9]{32})/(.+)$")
# Legacy form: /chat/{roomId}#{secretKey}
_LEGACY_PATH_RE = re.compile(r"/chat/([a-f0-9]{32})(?:/|$)")


def build_link(origin: str, room_id: str, secret_key: str) -> str:
    """
    Builds the shareable link. Both credentials sit in the fragment, which
    browsers and HTTP clients never send to the server.
    """
    return f"{origin.rstrip('/')}/#/chat/{room_id}/{secret_key}"


def parse_link(url: str) -> Optional[Credentials]:
    """
    Extracts room id and secret key from a link.
    Returns None (never raises) for anything that is not a room link.
    """
    if not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None

    match = _FRAGMENT_RE.match(parts.fragment)
    if match:
        return Credentials(room_id=match.group(1), secret_key=match.group(2))

    match = _LEGACY_PATH_RE.search(parts.path)
    if match and parts.fragment and not parts.fragment.startswith("/"):
        return Credentials(room_id=match.group(1), secret_key=parts.fragment)

    return None
