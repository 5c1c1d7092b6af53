from datetime import date, datetime, timezone

import pytest

from flowmetrics.metrics.calendar import business_days_between, is_business_day, working_days_remaining
from flowmetrics.metrics.stats import mean, percentile, percentiles


def _utc(day: int, hour: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, tzinfo=timezone.utc)


def test_percentiles_interpolate_linearly():
    result = percentiles(list(range(10, 0, -1)), 50, 85, 95)

    assert result[50] == pytest.approx(5.5)
    assert result[85] == pytest.approx(8.65)
    assert result[95] == pytest.approx(9.55)


def test_percentile_edge_cases():
    assert percentile([], 50) == 0.0
    assert percentile([7], 85) == 7.0
    assert percentile([1, 2, 3], 50) == 2.0
    assert percentile([1, 2, 3], 100) == 3.0


def test_mean():
    assert mean([]) is None
    assert mean([1, 2, 6]) == pytest.approx(3.0)


def test_business_day():
    assert is_business_day(date(2026, 3, 18))
    assert not is_business_day(date(2026, 3, 21))
    assert not is_business_day(date(2026, 3, 18), {date(2026, 3, 18)})


def test_thursday_to_wednesday_is_four_business_days():
    assert business_days_between(_utc(19), _utc(25)) == pytest.approx(4.0)


def test_weekday_holiday_is_skipped():
    assert business_days_between(_utc(19), _utc(25), {date(2026, 3, 23)}) == pytest.approx(3.0)


def test_weekend_holiday_changes_nothing():
    assert business_days_between(_utc(19), _utc(25), {date(2026, 3, 21)}) == pytest.approx(4.0)


def test_partial_days_are_fractional():
    assert business_days_between(_utc(19, 12), _utc(20)) == pytest.approx(0.5)
    assert business_days_between(_utc(20, 18), _utc(23, 6)) == pytest.approx(0.5)


def test_reversed_range_is_zero():
    assert business_days_between(_utc(25), _utc(19)) == 0.0


def test_working_days_remaining():
    assert working_days_remaining(date(2026, 3, 18), date(2026, 3, 27)) == 7
    assert working_days_remaining(date(2026, 3, 18), date(2026, 3, 27), {date(2026, 3, 24)}) == 6
    assert working_days_remaining(date(2026, 3, 27), date(2026, 3, 27)) == 0
