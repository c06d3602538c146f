"""
Shared helpers for cancellation tests.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

TOKYO = ZoneInfo('Asia/Tokyo')


def jst(*args) -> datetime:
    """Aware datetime in the portal's business time zone."""
    return datetime(*args, tzinfo=TOKYO)
