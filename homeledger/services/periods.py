"""
Calendar helpers for report windows.

All functions work on plain ``datetime.date`` values; nothing here touches the
database. Bad input raises ``InvalidArgumentError`` and callers decide whether
to fall back to a default.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from homeledger.core.errors import ConfigurationError, InvalidArgumentError

ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def today_in(tz_name: str) -> date:
    """Current calendar date in the given IANA timezone."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone: {tz_name}") from exc
    return datetime.now(tz).date()


def parse_iso_date(value: str | date | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` string. ``None`` and empty strings mean "not given"."""
    if value is None or isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    message = f"Invalid date '{value}', expected YYYY-MM-DD"
    # fromisoformat accepts other ISO shapes on newer interpreters
    if not ISO_DATE.fullmatch(text):
        raise InvalidArgumentError(message)
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidArgumentError(message) from exc


def parse_int_param(value: str | int | None, name: str) -> int | None:
    if value is None or isinstance(value, int):
        return value
    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid {name} '{value}', expected an integer") from exc


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move ``delta`` months from (year, month), crossing year boundaries."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of the month."""
    if not 1 <= month <= 12:
        raise InvalidArgumentError(f"Invalid month {month}, expected 1-12")
    if not 1 <= year <= 9999:
        raise InvalidArgumentError(f"Invalid year {year}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_month(today: date) -> tuple[int, int]:
    return shift_month(today.year, today.month, -1)


def first_of_month(today: date) -> date:
    return today.replace(day=1)


def billing_cycle(today: date, cycle_day: int = 5) -> tuple[date, date]:
    """
    Billing cycle containing ``today``.

    Cycles run from ``cycle_day`` of one month up to the day before
    ``cycle_day`` of the next month, both inclusive.
    """
    if today.day >= cycle_day:
        start = date(today.year, today.month, cycle_day)
    else:
        prev_year, prev_month = previous_month(today)
        start = date(prev_year, prev_month, cycle_day)
    next_year, next_month = shift_month(start.year, start.month, 1)
    end = date(next_year, next_month, cycle_day) - timedelta(days=1)
    return start, end


def billing_due_date(today: date, cycle_day: int = 5) -> date:
    """Next statement due date: ``cycle_day`` of next month once the cycle day has passed."""
    if today.day >= cycle_day:
        year, month = shift_month(today.year, today.month, 1)
        return date(year, month, cycle_day)
    return date(today.year, today.month, cycle_day)


def month_display_name(year: int, month: int) -> str:
    """Long month and year, e.g. ``February 2024``."""
    return f"{calendar.month_name[month]} {year}"
