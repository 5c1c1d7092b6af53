"""Daily rollup of per-stream metrics into DailyStreamMetric rows."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.materialization.models import DailyStreamMetric, StreamType
from flowmetrics.metrics.cycle_time import compute_cycle_time, compute_lead_time
from flowmetrics.metrics.defect_escape import compute_defect_escape
from flowmetrics.metrics.dora import compute_dora
from flowmetrics.metrics.flow_efficiency import compute_flow_efficiency
from flowmetrics.metrics.review_health import compute_review_health
from flowmetrics.metrics.wip import compute_wip
from flowmetrics.platform.service import MetricsConfig, load_metrics_config
from flowmetrics.streams.models import DeliveryStream, TechStream
from flowmetrics.streams.service import list_active_delivery_streams, list_active_tech_streams
from flowmetrics.timeutils import utc_now

logger = structlog.get_logger()


@dataclass
class MetricRow:
    stream_type: StreamType
    stream_id: uuid.UUID
    metric_name: str
    metric_value: float
    metric_unit: str
    percentile: int | None
    sample_size: int


async def delivery_stream_rows(db: AsyncSession, stream: DeliveryStream, now: datetime) -> list[MetricRow]:
    def row(name: str, value: float, unit: str, sample_size: int, percentile: int | None = None) -> MetricRow:
        return MetricRow(StreamType.DELIVERY, stream.id, name, value, unit, percentile, sample_size)

    cycle_time = await compute_cycle_time(db, stream.id, now=now)
    lead_time = await compute_lead_time(db, stream.id, now=now)
    flow = await compute_flow_efficiency(db, stream.id, now=now)
    defects = await compute_defect_escape(db, stream.id, now=now)
    wip = await compute_wip(db, stream.id)

    rows = [
        row("cycle_time_p50", cycle_time.p50, "days", cycle_time.count, 50),
        row("cycle_time_p85", cycle_time.p85, "days", cycle_time.count, 85),
        row("cycle_time_p95", cycle_time.p95, "days", cycle_time.count, 95),
        row("lead_time_p50", lead_time.p50, "days", lead_time.count, 50),
        row("lead_time_p85", lead_time.p85, "days", lead_time.count, 85),
        row("flow_efficiency", flow.avg_flow_efficiency_pct or 0.0, "percent", flow.count),
        row("defect_escape_rate", defects.escape_rate_pct, "percent", defects.count),
    ]
    rows.extend(row(f"wip_{stage}", count, "count", count) for stage, count in wip.by_stage.items())
    return rows


async def tech_stream_rows(
    db: AsyncSession, stream: TechStream, config: MetricsConfig, now: datetime
) -> list[MetricRow]:
    def row(name: str, value: float, unit: str, sample_size: int, percentile: int | None = None) -> MetricRow:
        return MetricRow(StreamType.TECH, stream.id, name, value, unit, percentile, sample_size)

    dora = await compute_dora(db, stream.id, now=now)
    review = await compute_review_health(db, stream.id, config=config, now=now)
    return [
        row("deployment_frequency", dora.deployment_frequency, "per_week", dora.deployment_count),
        row("change_failure_rate", dora.change_failure_rate, "percent", dora.deployment_count),
        row("ttr_median", dora.ttr_median_min, "minutes", dora.ttr_sample_size),
        row("ttr_mean", dora.ttr_mean_min, "minutes", dora.ttr_sample_size),
        row("lead_time_p50", dora.lead_time_p50_hrs or 0.0, "hours", dora.lead_time_sample_size, 50),
        row("lead_time_p85", dora.lead_time_p85_hrs or 0.0, "hours", dora.lead_time_sample_size, 85),
        row("review_turnaround_p50", review.p50, "hours", review.pr_count, 50),
        row("review_turnaround_p85", review.p85, "hours", review.pr_count, 85),
    ]


async def upsert_metric(db: AsyncSession, metric_date: date, metric: MetricRow, now: datetime) -> DailyStreamMetric:
    query = select(DailyStreamMetric).where(
        DailyStreamMetric.metric_date == metric_date,
        DailyStreamMetric.stream_type == metric.stream_type,
        DailyStreamMetric.stream_id == metric.stream_id,
        DailyStreamMetric.metric_name == metric.metric_name,
    )
    if metric.percentile is None:
        query = query.where(DailyStreamMetric.percentile.is_(None))
    else:
        query = query.where(DailyStreamMetric.percentile == metric.percentile)

    existing = (await db.execute(query)).scalar_one_or_none()
    if existing is not None:
        existing.metric_value = metric.metric_value
        existing.metric_unit = metric.metric_unit
        existing.sample_size = metric.sample_size
        existing.computed_at = now
        return existing

    created = DailyStreamMetric(
        metric_date=metric_date,
        stream_type=metric.stream_type,
        stream_id=metric.stream_id,
        metric_name=metric.metric_name,
        metric_value=metric.metric_value,
        metric_unit=metric.metric_unit,
        percentile=metric.percentile,
        sample_size=metric.sample_size,
        computed_at=now,
    )
    db.add(created)
    await db.flush()
    return created


async def materialize_daily_metrics(
    db: AsyncSession,
    config: MetricsConfig | None = None,
    now: datetime | None = None,
) -> int:
    """Write today's rows for every active stream; returns rows written.

    Metrics with an empty sample are skipped. Re-running on the same day
    overwrites the existing rows.
    """
    now = now or utc_now()
    config = config or await load_metrics_config(db)

    rows: list[MetricRow] = []
    for delivery_stream in await list_active_delivery_streams(db):
        rows.extend(await delivery_stream_rows(db, delivery_stream, now))
    for tech_stream in await list_active_tech_streams(db):
        rows.extend(await tech_stream_rows(db, tech_stream, config, now))

    written = 0
    for metric in rows:
        if metric.sample_size <= 0:
            continue
        await upsert_metric(db, now.date(), metric, now)
        written += 1

    await db.commit()
    logger.info("daily_metrics_materialized", metric_date=now.date().isoformat(), rows=written)
    return written
