"""Monte Carlo completion forecast from resampled weekly throughput."""

from collections import Counter
from collections.abc import Sequence
from datetime import date, timedelta

from pydantic import BaseModel

from flowmetrics.metrics.stats import RandomSource, percentile

SIMULATION_RUNS = 10_000
MAX_SIMULATED_WEEKS = 520
LOW_CONFIDENCE_WEEKS = 6
FORECAST_PERCENTILES = (50, 70, 85, 95)


class HistogramBucket(BaseModel):
    week_offset: int
    count: int


class ForecastResult(BaseModel):
    remaining_scope: int
    weeks_of_data: int
    is_low_confidence: bool
    linear_projection_weeks: float | None = None
    p50_weeks: float | None = None
    p70_weeks: float | None = None
    p85_weeks: float | None = None
    p95_weeks: float | None = None
    p50_date: date | None = None
    p70_date: date | None = None
    p85_date: date | None = None
    p95_date: date | None = None
    simulation_runs: int = 0
    histogram: list[HistogramBucket] = []


def simulate_completion_weeks(weekly_throughput: Sequence[int], remaining: int, rng: RandomSource) -> int:
    """Weeks of resampled throughput needed to clear ``remaining``, capped at MAX_SIMULATED_WEEKS."""
    completed = 0
    weeks = 0
    while completed < remaining and weeks < MAX_SIMULATED_WEEKS:
        completed += rng.choice(weekly_throughput)
        weeks += 1
    return weeks


def build_histogram(outcomes: Sequence[float]) -> list[HistogramBucket]:
    bins = Counter(round(w) for w in outcomes)
    return [HistogramBucket(week_offset=week, count=n) for week, n in sorted(bins.items())]


def run_forecast(
    weekly_throughput: Sequence[int],
    remaining: int,
    today: date,
    rng: RandomSource,
    runs: int = SIMULATION_RUNS,
) -> ForecastResult:
    """Forecast completion dates for ``remaining`` items.

    With fewer than LOW_CONFIDENCE_WEEKS of history only a linear projection is
    returned and every date stays None.
    """
    weeks_of_data = len(weekly_throughput)
    if weeks_of_data < LOW_CONFIDENCE_WEEKS:
        average = sum(weekly_throughput) / weeks_of_data if weeks_of_data else 0
        return ForecastResult(
            remaining_scope=remaining,
            weeks_of_data=weeks_of_data,
            is_low_confidence=True,
            linear_projection_weeks=remaining / average if average > 0 else None,
        )

    outcomes = sorted(simulate_completion_weeks(weekly_throughput, remaining, rng) for _ in range(runs))
    weeks = {p: percentile(outcomes, p) for p in FORECAST_PERCENTILES}
    return ForecastResult(
        remaining_scope=remaining,
        weeks_of_data=weeks_of_data,
        is_low_confidence=False,
        p50_weeks=weeks[50],
        p70_weeks=weeks[70],
        p85_weeks=weeks[85],
        p95_weeks=weeks[95],
        p50_date=today + timedelta(weeks=weeks[50]),
        p70_date=today + timedelta(weeks=weeks[70]),
        p85_date=today + timedelta(weeks=weeks[85]),
        p95_date=today + timedelta(weeks=weeks[95]),
        simulation_runs=runs,
        histogram=build_histogram(outcomes),
    )
