import random
import uuid
from collections import Counter
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.events.enums import OPEN_STAGES
from flowmetrics.forecast.models import ForecastSnapshot
from flowmetrics.forecast.monte_carlo import ForecastResult, run_forecast
from flowmetrics.metrics.stats import RandomSource
from flowmetrics.metrics.wip import current_stages
from flowmetrics.streams.service import list_active_delivery_streams
from flowmetrics.timeutils import ensure_utc, utc_now

logger = structlog.get_logger()

THROUGHPUT_WINDOW_WEEKS = 12


async def weekly_throughput(db: AsyncSession, delivery_stream_id: uuid.UUID, now: datetime) -> list[int]:
    """Completed items per Monday-start week over the trailing window; empty weeks are left out."""
    result = await db.execute(
        select(WorkItemCycle.completed_at).where(
            WorkItemCycle.delivery_stream_id == delivery_stream_id,
            WorkItemCycle.completed_at >= now - timedelta(weeks=THROUGHPUT_WINDOW_WEEKS),
        )
    )
    per_week: Counter = Counter()
    for completed_at in result.scalars().all():
        day = ensure_utc(completed_at).date()
        per_week[day - timedelta(days=day.weekday())] += 1
    return [per_week[week] for week in sorted(per_week)]


async def remaining_scope(db: AsyncSession, delivery_stream_id: uuid.UUID) -> int:
    stages = await current_stages(db, delivery_stream_id)
    return sum(1 for stage in stages.values() if stage in OPEN_STAGES)


async def compute_forecast(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> ForecastResult:
    now = now or utc_now()
    throughput = await weekly_throughput(db, delivery_stream_id, now)
    scope = await remaining_scope(db, delivery_stream_id)
    return run_forecast(throughput, scope, now.date(), rng or random.Random())


async def materialize_forecast(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> ForecastSnapshot:
    """Compute and upsert today's forecast snapshot for one delivery stream."""
    now = now or utc_now()
    forecast = await compute_forecast(db, delivery_stream_id, rng=rng, now=now)

    existing = await db.execute(
        select(ForecastSnapshot).where(
            ForecastSnapshot.delivery_stream_id == delivery_stream_id,
            ForecastSnapshot.forecast_date == now.date(),
        )
    )
    snapshot = existing.scalar_one_or_none()
    if snapshot is None:
        snapshot = ForecastSnapshot(delivery_stream_id=delivery_stream_id, forecast_date=now.date())
        db.add(snapshot)

    snapshot.scope_item_count = forecast.remaining_scope
    snapshot.throughput_samples = forecast.weeks_of_data
    snapshot.simulation_runs = forecast.simulation_runs
    snapshot.is_low_confidence = forecast.is_low_confidence
    snapshot.linear_projection_weeks = forecast.linear_projection_weeks
    snapshot.p50_completion_date = forecast.p50_date
    snapshot.p70_completion_date = forecast.p70_date
    snapshot.p85_completion_date = forecast.p85_date
    snapshot.p95_completion_date = forecast.p95_date
    snapshot.distribution_data = [bucket.model_dump() for bucket in forecast.histogram]
    snapshot.computed_at = now
    await db.commit()

    logger.info(
        "forecast_materialized",
        delivery_stream_id=str(delivery_stream_id),
        remaining_scope=forecast.remaining_scope,
        is_low_confidence=forecast.is_low_confidence,
    )
    return snapshot


async def materialize_all_forecasts(db: AsyncSession, now: datetime | None = None) -> int:
    streams = await list_active_delivery_streams(db)
    for stream in streams:
        await materialize_forecast(db, stream.id, now=now)
    return len(streams)
