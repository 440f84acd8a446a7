"""
Timezone utilities for DentalCare
Handles conversion between UTC timestamps and clinic-local display
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from .config import Config

CLINIC_TZ = ZoneInfo(Config.CLINIC_TIMEZONE)


def now_utc():
    """Get current time in UTC with timezone awareness"""
    return datetime.now(timezone.utc)


def now_local():
    """Get current time in the clinic timezone"""
    return datetime.now(CLINIC_TZ)


def today_local():
    """Get today's calendar date as seen from the clinic"""
    return now_local().date()


def to_local(dt):
    """
    Convert a datetime to clinic time

    Args:
        dt: datetime object (naive or aware)

    Returns:
        datetime in the clinic timezone
    """
    if dt is None:
        return None

    # If naive, assume it's UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(CLINIC_TZ)


def parse_timestamp(value):
    """
    Parse an ISO-8601 timestamp as sent by the backend

    Accepts a trailing 'Z'. Naive values are treated as UTC.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_local(dt, format_str='%Y-%m-%d %H:%M:%S %Z'):
    """
    Format a datetime in clinic time

    Args:
        dt: datetime object
        format_str: strftime format string

    Returns:
        Formatted string in the clinic timezone
    """
    if dt is None:
        return None

    local_dt = to_local(dt)
    return local_dt.strftime(format_str)
