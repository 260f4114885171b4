"""
Helpers for reading dotted field paths out of job documents.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

_MISSING = object()


def pick(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Read a value from a (possibly nested) document using a dotted path.

    Args:
        doc: Document as returned by the store
        path: Dotted field path, e.g. "cron.sleepUntil"
        default: Value returned when any segment of the path is missing

    Returns:
        The value at the path, or default
    """
    value = _lookup(doc, path)
    return default if value is _MISSING else value


def _lookup(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split('.'):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive datetimes (as returned by pymongo without tz_aware) are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
