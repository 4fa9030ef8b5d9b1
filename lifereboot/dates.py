"""
Calendar-day helpers. Dates travel as YYYY-MM-DD strings everywhere.
"""
from datetime import date, datetime, timedelta
from typing import Optional

from .schema import ValidationError

DATE_FORMAT = "%Y-%m-%d"


def today_str(now: Optional[datetime] = None) -> str:
    """Local calendar day."""
    return (now or datetime.now()).strftime(DATE_FORMAT)


def format_date_string(value: str) -> str:
    """Normalize to YYYY-MM-DD, dropping any time part ("2024-01-01T10:00" -> "2024-01-01")."""
    day = str(value or "").split("T")[0].strip()
    parse_date(day)
    return day


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date: '{value}' (expected YYYY-MM-DD)")


def shift_date(value: str, days: int) -> str:
    return (parse_date(value) + timedelta(days=days)).strftime(DATE_FORMAT)


def next_date(value: str) -> str:
    return shift_date(value, 1)


def previous_date(value: str) -> str:
    return shift_date(value, -1)


def format_date_for_display(value: str) -> str:
    """e.g. "Monday, January 1, 2024"."""
    d = parse_date(value)
    return f"{d.strftime('%A')}, {d.strftime('%B')} {d.day}, {d.year}"
