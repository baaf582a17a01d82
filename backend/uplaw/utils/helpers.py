"""
Utility helper functions
"""
from datetime import datetime, timezone
import re


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def safe_filename(name: str) -> str:
    """Reduce an uploaded filename to a storage-key friendly slug"""
    name = (name or "file").strip().lower()
    name = re.sub(r'[^\w.\s-]', '', name)
    name = re.sub(r'[-\s]+', '-', name)
    return name.strip('-.') or "file"

