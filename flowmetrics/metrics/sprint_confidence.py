"""Probability that the active sprint's remaining scope finishes by its end date."""

import random
import uuid
from collections import Counter
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.metrics.calendar import working_days_remaining
from flowmetrics.metrics.schemas import SprintConfidenceResult
from flowmetrics.metrics.stats import RandomSource
from flowmetrics.streams.service import get_active_sprint, get_latest_snapshot, load_holidays
from flowmetrics.timeutils import ensure_utc, utc_now

THROUGHPUT_WINDOW_WEEKS = 12
BOOTSTRAP_RUNS = 1000


class ConfidenceScorer(Protocol):
    def __call__(
        self,
        daily_samples: Sequence[int],
        remaining: int,
        working_days: int,
        rng: RandomSource,
    ) -> float: ...


def bootstrap_confidence(
    daily_samples: Sequence[int],
    remaining: int,
    working_days: int,
    rng: RandomSource,
    runs: int = BOOTSTRAP_RUNS,
) -> float:
    """Share of resampled futures in which daily throughput clears the remaining scope."""
    if not daily_samples:
        return 0.0
    successes = 0
    for _ in range(runs):
        total = 0
        for _ in range(working_days):
            total += rng.choice(daily_samples)
        if total >= remaining:
            successes += 1
    return successes / runs * 100


def clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, value))


async def daily_throughput_samples(
    db: AsyncSession, delivery_stream_id: uuid.UUID, now: datetime
) -> list[int]:
    """Completions per calendar day over the trailing window, days with completions only."""
    window_start = now - timedelta(weeks=THROUGHPUT_WINDOW_WEEKS)
    result = await db.execute(
        select(WorkItemCycle.completed_at).where(
            WorkItemCycle.delivery_stream_id == delivery_stream_id,
            WorkItemCycle.completed_at >= window_start,
        )
    )
    per_day = Counter(ensure_utc(completed_at).date() for completed_at in result.scalars().all())
    return [per_day[day] for day in sorted(per_day)]


async def compute_sprint_confidence(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID,
    scorer: ConfidenceScorer | None = None,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> SprintConfidenceResult:
    now = now or utc_now()
    sprint = await get_active_sprint(db, delivery_stream_id)
    if sprint is None:
        return SprintConfidenceResult(confidence=0.0, has_insufficient_data=True)

    snapshot = await get_latest_snapshot(db, sprint.id)
    remaining = snapshot.remaining_count if snapshot else 0
    today: date = now.date()
    holidays = await load_holidays(db)
    days_left = working_days_remaining(today, sprint.end_date, holidays) if sprint.end_date else 0

    samples = await daily_throughput_samples(db, delivery_stream_id, now)
    if not samples:
        return SprintConfidenceResult(
            confidence=0.0,
            sprint_id=sprint.id,
            sprint_name=sprint.name,
            remaining_count=remaining,
            working_days_remaining=days_left,
            has_insufficient_data=True,
        )

    score = (scorer or bootstrap_confidence)(samples, remaining, days_left, rng or random.Random())
    return SprintConfidenceResult(
        confidence=clamp_confidence(score),
        sprint_id=sprint.id,
        sprint_name=sprint.name,
        remaining_count=remaining,
        working_days_remaining=days_left,
        has_insufficient_data=False,
    )
