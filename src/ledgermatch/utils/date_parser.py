"""Date parsing utilities."""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_date(date_str: Optional[str], dayfirst: bool = True) -> Optional[date]:
    """Parse a date string into a date object.

    Supports:
    - ISO dates: "2024-01-15", "2024-01-15T10:00:00"
    - Bank export dates: "15.01.2024", "15/01/2024" (day first by default)
    - Spelled out dates: "January 15, 2024"
    - Relative dates: "today", "yesterday", "last month"

    Args:
        date_str: Date string
        dayfirst: Read ambiguous numeric dates as day-month-year

    Returns:
        Date object, or None if the string cannot be parsed
    """
    if not date_str or not date_str.strip():
        return None

    text = date_str.strip().lower()
    today = date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
        "last month": (today - relativedelta(months=1)).replace(day=1),
        "this month": today.replace(day=1),
        "last year": today.replace(month=1, day=1) - relativedelta(years=1),
        "this year": today.replace(month=1, day=1),
    }
    if text in relative_dates:
        return relative_dates[text]

    # ISO strings are never day-first
    use_dayfirst = dayfirst and not _ISO_DATE_RE.match(text)
    try:
        return date_parser.parse(text, dayfirst=use_dayfirst).date()
    except (ValueError, OverflowError):
        return None


def as_date(value: Union[date, datetime, None]) -> Optional[date]:
    """Normalize a date or datetime to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(a: date, b: date) -> int:
    """Absolute number of days between two dates."""
    return abs((as_date(a) - as_date(b)).days)


def month_key(value: date) -> str:
    """Return the YYYY-MM key for a date."""
    return f"{value.year:04d}-{value.month:02d}"
