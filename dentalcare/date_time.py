"""
Date and time helpers shared by the calendar, forms and resources.

Dates travel as ``YYYY-MM-DD`` strings and times of day as ``HH:mm`` or
``HH:mm:ss`` strings, which is how the backend stores them. The formatting
helpers never raise: unparseable input is returned unchanged so a bad row
cannot break a whole listing.
"""
import calendar
import re
from datetime import date, datetime, timedelta

from .tz_utils import today_local

DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_RE = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)(:([0-5]\d))?$')


def parse_date(value):
    """Parse a strict ``YYYY-MM-DD`` string, returning None when invalid."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_RE.match(value):
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        return None


def parse_time(value):
    """Parse ``HH:mm`` or ``HH:mm:ss`` into a ``datetime.time``."""
    if not isinstance(value, str) or not TIME_RE.match(value):
        return None
    fmt = '%H:%M:%S' if value.count(':') == 2 else '%H:%M'
    return datetime.strptime(value, fmt).time()


def _twelve_hour(t):
    suffix = 'AM' if t.hour < 12 else 'PM'
    return f"{t.hour % 12 or 12}:{t.minute:02d} {suffix}"


def format_time(time_str):
    """Format ``14:30`` / ``14:30:00`` as ``2:30 PM``."""
    parsed = parse_time(time_str)
    if parsed is None:
        return time_str
    return _twelve_hour(parsed)


def format_date(date_str):
    """Format ``2024-01-15`` as ``Jan 15, 2024``."""
    parsed = parse_date(date_str)
    if parsed is None:
        return date_str
    return parsed.strftime('%b %d, %Y')


def format_date_full(value):
    """Format a date as ``Monday, January 15, 2024``."""
    parsed = parse_date(value)
    if parsed is None:
        return value if isinstance(value, str) else str(value)
    return f"{parsed.strftime('%A, %B')} {parsed.day}, {parsed.year}"


def format_date_for_input(value):
    """Return ``YYYY-MM-DD`` for a date, or an empty string."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else ''


def format_date_time(date_str, time_str):
    return f"{format_date(date_str)} at {format_time(time_str)}"


def calculate_end_time(start_time, duration_minutes):
    """
    Add a duration to a time of day, keeping the input's format.

    Wraps past midnight the same way a clock does.
    """
    parsed = parse_time(start_time)
    if parsed is None:
        return start_time
    end = datetime.combine(date(2000, 1, 1), parsed) + timedelta(minutes=duration_minutes)
    fmt = '%H:%M:%S' if start_time.count(':') == 2 else '%H:%M'
    return end.strftime(fmt)


def is_today(date_str, today=None):
    parsed = parse_date(date_str)
    if parsed is None:
        return False
    return parsed == (today or today_local())


def format_duration(minutes):
    """Format minutes as ``45m``, ``2h`` or ``1h 30m``."""
    if minutes < 60:
        return f"{minutes}m"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def create_date_range(start, end):
    """Build the ``start_date``/``end_date`` query pair for list endpoints."""
    return {
        'start_date': format_date_for_input(start),
        'end_date': format_date_for_input(end),
    }


def parse_time_to_minutes(time_str):
    """Minutes since midnight for ``HH:mm[:ss]``; 0 when unparseable."""
    try:
        hours, minutes = time_str.split(':')[:2]
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        return 0


def minutes_to_time_string(minutes):
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def is_valid_date_string(value):
    return parse_date(value) is not None if isinstance(value, str) else False


def is_valid_time_string(value):
    return isinstance(value, str) and bool(TIME_RE.match(value))


def start_of_month(d):
    return d.replace(day=1)


def end_of_month(d):
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def start_of_week(d):
    """Sunday on or before ``d``."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def end_of_week(d):
    """Saturday on or after ``d``."""
    return start_of_week(d) + timedelta(days=6)


def add_months(d, months):
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def each_day(start, end):
    """Inclusive list of dates from ``start`` to ``end``."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
