from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Optional


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are taken to already be in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: datetime, tz: tzinfo) -> datetime:
    """Midnight of the calendar day containing `value`, as seen in `tz`."""
    local = value.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def to_storage(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a datetime as a fixed-width UTC ISO string.

    The fixed width keeps lexicographic order equal to chronological order,
    which the sqlite range queries rely on.
    """
    if value is None:
        return None
    dt = as_utc(value)
    assert dt is not None
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_storage(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(value))
