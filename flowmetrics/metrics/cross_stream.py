"""Which tech streams are blocking delivery streams, and how badly."""

import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import WorkItemEventType
from flowmetrics.events.models import WorkItemEvent
from flowmetrics.metrics.models import CrossStreamCorrelation
from flowmetrics.metrics.schemas import CrossStreamResult
from flowmetrics.metrics.sprint_confidence import ConfidenceScorer, compute_sprint_confidence
from flowmetrics.metrics.stats import RandomSource
from flowmetrics.platform.service import CrossStreamSeverity, MetricsConfig, SeverityThreshold, load_metrics_config
from flowmetrics.streams.service import list_active_tech_streams
from flowmetrics.timeutils import utc_now

logger = structlog.get_logger()

BLOCK_WINDOW_DAYS = 14


def resolve_severity(
    impacted_count: int,
    confidence: float,
    thresholds: Sequence[SeverityThreshold],
) -> CrossStreamSeverity:
    """First threshold row whose minimum impact is met and confidence ceiling not exceeded."""
    if impacted_count == 0:
        return "none"
    for row in thresholds:
        if impacted_count >= row.min_impacted_streams and confidence <= row.max_confidence:
            return row.severity
    return "low"


async def compute_cross_stream(
    db: AsyncSession,
    tech_stream_id: uuid.UUID,
    config: MetricsConfig | None = None,
    scorer: ConfidenceScorer | None = None,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> CrossStreamResult:
    config = config or MetricsConfig()
    now = now or utc_now()
    result = await db.execute(
        select(WorkItemEvent.delivery_stream_id).where(
            WorkItemEvent.event_type == WorkItemEventType.BLOCKED,
            WorkItemEvent.blocking_tech_stream_id == tech_stream_id,
            WorkItemEvent.event_timestamp >= now - timedelta(days=BLOCK_WINDOW_DAYS),
            WorkItemEvent.delivery_stream_id.is_not(None),
        )
    )
    blocked_streams = list(result.scalars().all())
    impacted = list(dict.fromkeys(blocked_streams))

    if not impacted:
        return CrossStreamResult(
            tech_stream_id=tech_stream_id,
            block_count_14d=0,
            impacted_delivery_stream_ids=[],
            avg_confidence_pct=None,
            severity="none",
        )

    confidences = [
        (await compute_sprint_confidence(db, stream_id, scorer=scorer, rng=rng, now=now)).confidence
        for stream_id in impacted
    ]
    avg_confidence = sum(confidences) / len(confidences)
    return CrossStreamResult(
        tech_stream_id=tech_stream_id,
        block_count_14d=len(blocked_streams),
        impacted_delivery_stream_ids=impacted,
        avg_confidence_pct=avg_confidence,
        severity=resolve_severity(len(impacted), avg_confidence, config.severity_thresholds),
    )


async def materialize_cross_stream(
    db: AsyncSession,
    config: MetricsConfig | None = None,
    now: datetime | None = None,
) -> list[CrossStreamCorrelation]:
    """Upsert today's correlation row for every active tech stream."""
    config = config or await load_metrics_config(db)
    now = now or utc_now()
    today = now.date()

    rows = []
    for tech_stream in await list_active_tech_streams(db):
        computed = await compute_cross_stream(db, tech_stream.id, config=config, now=now)
        existing = await db.execute(
            select(CrossStreamCorrelation).where(
                CrossStreamCorrelation.tech_stream_id == tech_stream.id,
                CrossStreamCorrelation.analysis_date == today,
            )
        )
        row = existing.scalar_one_or_none()
        if row is None:
            row = CrossStreamCorrelation(tech_stream_id=tech_stream.id, analysis_date=today)
            db.add(row)
        row.impacted_delivery_streams = [str(i) for i in computed.impacted_delivery_stream_ids]
        row.block_count_14d = computed.block_count_14d
        row.avg_confidence_pct = computed.avg_confidence_pct
        row.severity = computed.severity
        row.computed_at = now
        rows.append(row)

    await db.commit()
    logger.info("cross_stream_materialized", tech_streams=len(rows), analysis_date=today.isoformat())
    return rows
