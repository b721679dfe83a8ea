"""
Timezone Utilities.

Golden Rules:
1. Database: Always store UTC
2. Comparisons: Only ever compare timezone-aware datetimes

Some drivers (SQLite) hand back naive datetimes even for
``DateTime(timezone=True)`` columns, so anything read from the store
goes through ``to_utc`` before it is compared with ``utc_now()``.
"""

from datetime import datetime, timezone
from typing import Optional

# UTC constant
UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC, treating naive values as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_utc_optional(dt: Optional[datetime]) -> Optional[datetime]:
    """``to_utc`` that passes ``None`` through."""
    return to_utc(dt) if dt is not None else None


def within_window(
    valid_from: datetime,
    valid_until: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    """Check ``now`` falls in the half-open window ``[valid_from, valid_until)``."""
    now = to_utc(now) if now is not None else utc_now()
    if to_utc(valid_from) > now:
        return False
    if valid_until is not None and to_utc(valid_until) <= now:
        return False
    return True
