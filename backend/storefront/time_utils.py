from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC now. All timestamps written by services use this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    # SQLite hands back naive values, Postgres aware ones
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', second precision. Naive input is read as UTC."""
    if dt is None:
        return None
    stamp = as_naive_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"
