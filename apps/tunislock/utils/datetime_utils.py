"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to an aware UTC datetime.

    Naive values are assumed to already be in UTC (SQLite hands back naive
    datetimes, and API clients sending ISO strings without offset mean UTC).

    Args:
        value: Datetime, aware or naive

    Returns:
        Aware datetime in UTC
    """
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize an optional datetime as an ISO 8601 UTC string."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
