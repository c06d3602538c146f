"""
Deadline calculation for cancellation and extension requests.

Both functions are pure: the result depends only on the delivery timestamp
(and the optional zone it should be read in).
"""
import calendar
from datetime import datetime, timedelta, tzinfo
from typing import Optional

BASIC_WINDOW_DAYS = 7


def _end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=0)


def _in_zone(delivered_at: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is not None and delivered_at.tzinfo is not None:
        return delivered_at.astimezone(tz)
    return delivered_at


def basic_deadline(delivered_at: datetime, tz: Optional[tzinfo] = None,
                   window_days: int = BASIC_WINDOW_DAYS) -> datetime:
    """
    Submission deadline shared by cancellation and extension requests.

    Delivery day + ``window_days`` (7 by default), at 23:59:59 of that day.

    Args:
        delivered_at: When the lead was delivered to the merchant
        tz: Zone the calendar day is taken in (aware timestamps only)
        window_days: Length of the window in days

    Returns:
        The deadline, carrying the same tzinfo as the localized input
    """
    local = _in_zone(delivered_at, tz)
    return _end_of_day(local + timedelta(days=window_days))


def extended_deadline(delivered_at: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Deadline granted by an approved extension: the last day of the calendar
    month after the delivery month, at 23:59:59.

    Delivered 2024-01-15 -> 2024-02-29 23:59:59; delivered 2024-12-03 ->
    2025-01-31 23:59:59.
    """
    local = _in_zone(delivered_at, tz)
    if local.month == 12:
        year, month = local.year + 1, 1
    else:
        year, month = local.year, local.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return _end_of_day(local.replace(year=year, month=month, day=last_day))


def days_elapsed(delivered_at: datetime, now: datetime) -> int:
    """Whole days since delivery (never negative)."""
    return max((now - delivered_at).days, 0)
