"""
Shared application logger
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("uplaw")


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stdout handler to the root logger (idempotent)."""
    root = logging.getLogger()
    if not any(getattr(h, "_uplaw_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._uplaw_handler = True
        root.addHandler(handler)
    root.setLevel(level.upper())
