"""One-call logging setup for scripts and applications embedding fogroom."""

import logging
from typing import Optional, Union

from fogroom.common import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Calling it again only updates the level; handlers are never duplicated.
    """
    if level is None:
        level = config.LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("fogroom")
    root.setLevel(level)
    if not any(getattr(h, "_fogroom", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._fogroom = True
        root.addHandler(handler)
    return root
