"""Canonical period keys and calendar arithmetic.

    day    2026-02-15
    week   2026-W07   (ISO week-numbering year, weeks start Monday)
    month  2026-02
    year   2026

Keys of one granularity sort lexicographically in chronological order.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from datetime import date, timedelta

from tally.kernel.models import ContractViolation, TimePeriod


def parse_day_key(day_key: str) -> date:
    return date.fromisoformat(day_key)


def day_key(d: date) -> str:
    return d.isoformat()


def week_key(d: date) -> str:
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month_key(d: date) -> str:
    return f"{d.year}-{d.month:02d}"


def year_key(d: date) -> str:
    return f"{d.year}"


def key_for_date(d: date, period: TimePeriod) -> str:
    """Key of the `period` bucket containing `d`."""
    if period == TimePeriod.day:
        return day_key(d)
    if period == TimePeriod.week:
        return week_key(d)
    if period == TimePeriod.month:
        return month_key(d)
    if period == TimePeriod.year:
        return year_key(d)
    raise ContractViolation("The all-time bucket has no period key")


def to_period_key(day: str, period: TimePeriod) -> str:
    """Convert a day key into the key of its containing period."""
    return key_for_date(parse_day_key(day), period)


def month_to_year_key(month: str) -> str:
    return month[:4]


def period_bounds(key: str, period: TimePeriod) -> tuple[date, date]:
    """First and last calendar day (inclusive) covered by `key`."""
    if period == TimePeriod.day:
        d = parse_day_key(key)
        return d, d
    if period == TimePeriod.week:
        year_str, week_str = key.split("-W")
        start = date.fromisocalendar(int(year_str), int(week_str), 1)
        return start, start + timedelta(days=6)
    if period == TimePeriod.month:
        year, month = int(key[:4]), int(key[5:7])
        _, last = calendar.monthrange(year, month)
        return date(year, month, 1), date(year, month, last)
    if period == TimePeriod.year:
        year = int(key)
        return date(year, 1, 1), date(year, 12, 31)
    raise ContractViolation("The all-time bucket has no bounds")


def period_end(key: str, period: TimePeriod) -> date:
    return period_bounds(key, period)[1]


def is_period_open(key: str, period: TimePeriod, today: date) -> bool:
    """True while `today` has not moved past the period's last day."""
    return period_end(key, period) >= today


def next_period_key(key: str, period: TimePeriod) -> str:
    return key_for_date(period_end(key, period) + timedelta(days=1), period)


def iter_period_keys(start: str, end: str, period: TimePeriod) -> Iterator[str]:
    """Every key from `start` through `end` inclusive, gaps included."""
    key = start
    while key <= end:
        yield key
        key = next_period_key(key, period)


def current_period_key(today: date, period: TimePeriod) -> str | None:
    if period == TimePeriod.anytime:
        return None
    return key_for_date(today, period)
