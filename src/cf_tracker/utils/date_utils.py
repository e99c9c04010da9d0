"""Date and time helpers.

Every timestamp handled by the tracker is a timezone-aware UTC datetime.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def from_timestamp(seconds: int | float) -> datetime:
    """Convert epoch seconds (as returned by the Codeforces API) to UTC."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string stored in the database.

    Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    parsed: datetime = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def days_since(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed between ``moment`` and ``now``."""
    now = now or utc_now()
    return max(0, (now - moment).days)
