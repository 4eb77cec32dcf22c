"""
Time-of-day discount rule for the promotional banner.

The banner runs a day discount between 06:00 and 18:00 Pakistan time and a
larger night discount otherwise. Pakistan time is a fixed UTC+5 offset with
no daylight saving, so no tz database is needed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

PAKISTAN_TZ = timezone(timedelta(hours=5), name="PKT")

DAY_START_HOUR = 6
NIGHT_START_HOUR = 18

DAY_DISCOUNT = 50
NIGHT_DISCOUNT = 70


class TimezoneConversionError(Exception):
    """Raised when an instant cannot be converted to Pakistan time."""


def to_local_time(instant: datetime) -> datetime:
    """Convert ``instant`` to Pakistan civil time. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    try:
        return instant.astimezone(PAKISTAN_TZ)
    except (OverflowError, ValueError) as exc:
        raise TimezoneConversionError(str(exc)) from exc


def discount_for_hour(hour: int) -> int:
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be in 0..23, got {hour}")
    if DAY_START_HOUR <= hour < NIGHT_START_HOUR:
        return DAY_DISCOUNT
    return NIGHT_DISCOUNT


def discount_for(instant: datetime) -> int:
    """Return the discount percentage in effect at ``instant``."""
    return discount_for_hour(to_local_time(instant).hour)
