"""
Datetime utilities
Timezone-aware helpers; all persisted and in-memory timestamps are UTC
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time with timezone awareness

    Example:
        >>> from companion.utils.datetime_utils import utc_now
        >>> utc_now().tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    SQLite drops tzinfo on round-trip, so naive values coming back from the
    database are interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    """Elapsed hours from `earlier` to `later` (negative if reversed)"""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600.0


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into aware UTC, returning None for empty or invalid input"""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None
