"""Working-time arithmetic that skips weekends and public holidays."""

from collections.abc import Collection
from datetime import date, datetime, time, timedelta

from flowmetrics.timeutils import ensure_utc

SECONDS_PER_DAY = 86400


def is_business_day(day: date, holidays: Collection[date] = ()) -> bool:
    return day.weekday() < 5 and day not in holidays


def business_days_between(start: datetime, end: datetime, holidays: Collection[date] = ()) -> float:
    """Elapsed business days from ``start`` to ``end`` in UTC, with fractional partial days.

    Thursday 00:00 to the following Wednesday 00:00 is 4.0. A holiday on a
    weekend changes nothing.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        return 0.0

    total_seconds = 0.0
    cursor = start
    while cursor < end:
        day_start = datetime.combine(cursor.date(), time.min, tzinfo=cursor.tzinfo)
        next_day = day_start + timedelta(days=1)
        if is_business_day(cursor.date(), holidays):
            total_seconds += (min(end, next_day) - cursor).total_seconds()
        cursor = next_day
    return total_seconds / SECONDS_PER_DAY


def working_days_remaining(today: date, end_date: date, holidays: Collection[date] = ()) -> int:
    """Whole business days from tomorrow through ``end_date`` inclusive."""
    remaining = 0
    day = today + timedelta(days=1)
    while day <= end_date:
        if is_business_day(day, holidays):
            remaining += 1
        day += timedelta(days=1)
    return remaining
