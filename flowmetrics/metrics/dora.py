"""DORA metrics for production deploys: frequency, change failure rate, restore time, lead time."""

import uuid
from collections.abc import Sequence
from datetime import datetime, time, timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.models import DeploymentRecord, IncidentEvent
from flowmetrics.metrics.schemas import DoraMetrics, DoraTrendPoint
from flowmetrics.metrics.stats import mean, percentile
from flowmetrics.streams.models import Repository
from flowmetrics.timeutils import utc_now
from flowmetrics.webhooks.correlation import PRODUCTION

CONFIG_TRIGGER = "config"
TREND_WINDOW_DAYS = 90


def aggregate_dora(
    deploys: Sequence[DeploymentRecord],
    incidents: Sequence[IncidentEvent],
    window_days: int,
) -> DoraMetrics:
    """Aggregate already-filtered production deploys and resolved incidents."""
    deploy_count = len(deploys)
    failed = sum(1 for d in deploys if d.caused_incident)
    ttr_values = sorted(float(i.time_to_restore_min) for i in incidents if i.time_to_restore_min is not None)
    lead_times = sorted(float(d.lead_time_hrs) for d in deploys if d.lead_time_hrs is not None)

    return DoraMetrics(
        window_days=window_days,
        deployment_count=deploy_count,
        deployment_frequency=deploy_count / (window_days / 7) if deploy_count else 0.0,
        change_failure_rate=failed / deploy_count * 100 if deploy_count else 0.0,
        ttr_median_min=percentile(ttr_values, 50),
        ttr_mean_min=mean(ttr_values) or 0.0,
        ttr_sample_size=len(ttr_values),
        lead_time_p50_hrs=percentile(lead_times, 50) if lead_times else None,
        lead_time_p85_hrs=percentile(lead_times, 85) if lead_times else None,
        lead_time_sample_size=len(lead_times),
    )


async def _production_deploys(
    db: AsyncSession, tech_stream_id: uuid.UUID | None, start: datetime, end: datetime
) -> list[DeploymentRecord]:
    query = (
        select(DeploymentRecord)
        .join(Repository, Repository.id == DeploymentRecord.repo_id)
        .where(
            DeploymentRecord.environment == PRODUCTION,
            DeploymentRecord.deployed_at >= start,
            DeploymentRecord.deployed_at < end,
            Repository.is_deployable.is_(True),
            or_(DeploymentRecord.trigger_type.is_(None), DeploymentRecord.trigger_type != CONFIG_TRIGGER),
        )
    )
    if tech_stream_id is not None:
        query = query.where(DeploymentRecord.tech_stream_id == tech_stream_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _restored_incidents(
    db: AsyncSession, tech_stream_id: uuid.UUID | None, start: datetime, end: datetime
) -> list[IncidentEvent]:
    query = select(IncidentEvent).where(
        IncidentEvent.occurred_at >= start,
        IncidentEvent.occurred_at < end,
        IncidentEvent.time_to_restore_min.is_not(None),
    )
    if tech_stream_id is not None:
        query = query.where(IncidentEvent.tech_stream_id == tech_stream_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def compute_dora(
    db: AsyncSession,
    tech_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> DoraMetrics:
    end = now or utc_now()
    start = end - timedelta(days=window_days)
    # inclusive of deploys stamped exactly at "now"
    end_exclusive = end + timedelta(microseconds=1)
    deploys = await _production_deploys(db, tech_stream_id, start, end_exclusive)
    incidents = await _restored_incidents(db, tech_stream_id, start, end_exclusive)
    return aggregate_dora(deploys, incidents, window_days)


async def compute_dora_trend(
    db: AsyncSession,
    tech_stream_id: uuid.UUID | None = None,
    window_days: int = TREND_WINDOW_DAYS,
    now: datetime | None = None,
) -> list[DoraTrendPoint]:
    """Weekly DORA buckets over the trailing window, oldest first."""
    current = now or utc_now()
    today_start = datetime.combine(current.date(), time.min, tzinfo=current.tzinfo)
    cursor = today_start - timedelta(days=window_days)

    points: list[DoraTrendPoint] = []
    while cursor < today_start:
        bucket_end = min(cursor + timedelta(days=7), today_start)
        deploys = await _production_deploys(db, tech_stream_id, cursor, bucket_end)
        incidents = await _restored_incidents(db, tech_stream_id, cursor, bucket_end)
        bucket = aggregate_dora(deploys, incidents, 7)
        points.append(
            DoraTrendPoint(
                week_start=cursor.date(),
                deployment_count=bucket.deployment_count,
                change_failure_rate=bucket.change_failure_rate,
                ttr_median_min=bucket.ttr_median_min,
                lead_time_p50_hrs=bucket.lead_time_p50_hrs,
                lead_time_p85_hrs=bucket.lead_time_p85_hrs,
            )
        )
        cursor += timedelta(days=7)
    return points
