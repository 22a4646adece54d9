"""
DateTime utility functions for the application.

Timestamps are stored as naive UTC datetimes; calendar dates travel as
ISO strings (YYYY-MM-DD).
"""
import calendar
import re
from datetime import date, datetime, timezone

_ISO_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")


def utcnow():
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_iso(now=None):
    return (now or utcnow()).date().isoformat()


def to_iso_date(value):
    """
    Normalize a date-like value to 'YYYY-MM-DD'.

    Accepts date/datetime objects and strings shaped like 2024-1-5 or
    2024/01/05. Anything else (including None and blanks) becomes ''.
    """
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    match = _ISO_DATE_RE.match(str(value).strip())
    if not match:
        return ""
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return ""


def add_months(day, months):
    """Add calendar months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def format_datetime_utc(dt):
    """
    Format a datetime as ISO 8601 in UTC, or None.

    Args:
        dt: naive (assumed UTC) or aware datetime, or None
    """
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")
