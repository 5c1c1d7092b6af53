import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.metrics.schemas import PercentileSummary
from flowmetrics.metrics.stats import percentile
from flowmetrics.timeutils import utc_now


def summarize(values: list[float]) -> PercentileSummary:
    ordered = sorted(values)
    return PercentileSummary(
        count=len(ordered),
        p50=percentile(ordered, 50),
        p85=percentile(ordered, 85),
        p95=percentile(ordered, 95),
    )


async def completed_cycles(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> list[WorkItemCycle]:
    """Work-item cycles completed within the trailing window."""
    window_start = (now or utc_now()) - timedelta(days=window_days)
    query = select(WorkItemCycle).where(WorkItemCycle.completed_at >= window_start)
    if delivery_stream_id is not None:
        query = query.where(WorkItemCycle.delivery_stream_id == delivery_stream_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def compute_cycle_time(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> PercentileSummary:
    cycles = await completed_cycles(db, delivery_stream_id, window_days, now)
    return summarize([c.cycle_time_days for c in cycles])


async def compute_lead_time(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> PercentileSummary:
    cycles = await completed_cycles(db, delivery_stream_id, window_days, now)
    return summarize([c.lead_time_days for c in cycles])
