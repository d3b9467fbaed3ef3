# backend/duplex/core/logging.py
import logging
import sys

from duplex.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Send engine logs to stdout. Safe to call more than once; the root
    handler is only installed the first time.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_duplex", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._duplex = True
        root.addHandler(handler)
