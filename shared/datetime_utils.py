"""
Date/time helpers — framework-agnostic.

MongoDB hands datetimes back naive unless the client is configured with
``tz_aware=True``; everything stored by this service is UTC, so naive values
are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime (naive input is assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from *now* until *moment*, floored at zero."""
    delta = (ensure_utc(moment) - ensure_utc(now)).total_seconds()
    return max(0, int(delta))
