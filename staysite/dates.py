# Date-only calendar helpers. Every stay boundary in the system is a plain
# datetime.date interpreted as UTC midnight; nothing here touches local time.
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, List, Optional

_DATE_ONLY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_date_only(value: Optional[str]) -> Optional[date]:
    """
    Parse a strict YYYY-MM-DD literal.

    Returns None for anything else, including dates that would roll over
    into the next month (2024-02-30) and a zero year/month/day.
    """
    if not isinstance(value, str):
        return None
    match = _DATE_ONLY.match(value)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    if not year or not month or not day:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date_only(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def is_valid_date_range(start: date, end: date) -> bool:
    # Strict: a zero-night stay is not a range
    return start < end


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open overlap; touching boundaries (end_a == start_b) do not overlap."""
    return start_a < end_b and start_b < end_a


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def start_of_month(value: date) -> date:
    return value.replace(day=1)


def days_in_month(value: date) -> int:
    return calendar.monthrange(value.year, value.month)[1]


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day in [start, end)."""
    cursor = start
    while cursor < end:
        yield cursor
        cursor = add_days(cursor, 1)


def date_range(start: date, end: date) -> List[date]:
    return list(iter_days(start, end))
