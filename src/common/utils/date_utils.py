"""Utility functions for date manipulation."""

import calendar
from datetime import date, datetime

import pytz

from src.common.config.settings import settings


def get_timezone() -> pytz.BaseTzInfo:
    """Returns the configured ledger timezone."""
    return pytz.timezone(settings.TIMEZONE)


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def ensure_aware(value: datetime) -> datetime:
    """Attaches the configured timezone to naive datetimes; aware values pass through."""
    if value.tzinfo is None:
        return get_timezone().localize(value)
    return value


def parse_datetime(value: str | date | datetime | None) -> datetime | None:
    """
    Parses an ISO date or datetime string into an aware datetime.

    Plain dates become midnight in the configured timezone. Raises ValueError
    for unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return ensure_aware(datetime(value.year, value.month, value.day))
    # Handle both Z and +00:00 for UTC
    return ensure_aware(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))


def add_months(value: datetime, months: int) -> datetime:
    """Adds calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def format_datetime_for_db(value: datetime | None) -> str | None:
    """Formats an aware datetime as a UTC MySQL DATETIME string."""
    if value is None:
        return None
    return ensure_aware(value).astimezone(pytz.utc).strftime("%Y-%m-%d %H:%M:%S")


def parse_datetime_from_db(value: datetime | None) -> datetime | None:
    """MySQL returns naive UTC datetimes; mark them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value
