"""Deletes rows that have aged out of their table's retention window."""

from datetime import datetime

import structlog
from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from flowmetrics.cycles.models import PrCycle, WorkItemCycle
from flowmetrics.events.models import (
    CicdEvent,
    DefectEvent,
    DeploymentRecord,
    IncidentEvent,
    PrEvent,
    WorkItemEvent,
)
from flowmetrics.forecast.models import ForecastSnapshot
from flowmetrics.materialization.models import DailyStreamMetric
from flowmetrics.platform.service import MetricsConfig, put_setting
from flowmetrics.queue.models import EventQueueItem, QueueStatus
from flowmetrics.timeutils import months_before, utc_now

logger = structlog.get_logger()

LAST_RUN_KEY = "last_data_retention_run"

# Chronological column each table ages out by.
RETENTION_COLUMNS: dict[str, InstrumentedAttribute] = {
    "work_item_events": WorkItemEvent.event_timestamp,
    "defect_events": DefectEvent.event_timestamp,
    "pr_events": PrEvent.event_timestamp,
    "cicd_events": CicdEvent.event_timestamp,
    "incident_events": IncidentEvent.occurred_at,
    "deployment_records": DeploymentRecord.deployed_at,
    "pr_cycles": PrCycle.opened_at,
    "work_item_cycles": WorkItemCycle.completed_at,
    "daily_stream_metrics": DailyStreamMetric.metric_date,
    "forecast_snapshots": ForecastSnapshot.computed_at,
    "event_queue": EventQueueItem.enqueued_at,
}


class RetentionResult(BaseModel):
    table: str
    cutoff: datetime
    rows_deleted: int


async def enforce_retention(
    db: AsyncSession,
    config: MetricsConfig,
    now: datetime | None = None,
) -> list[RetentionResult]:
    """Apply ``config.retention_months`` to every known table.

    Pending queue rows are never deleted, however old. Table names with no
    known chronological column are skipped.
    """
    now = now or utc_now()
    results: list[RetentionResult] = []

    for table, months in config.retention_months.items():
        column = RETENTION_COLUMNS.get(table)
        if column is None:
            logger.debug("retention_table_unknown", table=table)
            continue

        cutoff = months_before(now, months)
        boundary = cutoff.date() if table == "daily_stream_metrics" else cutoff
        stmt = delete(column.class_).where(column < boundary)
        if table == "event_queue":
            stmt = stmt.where(EventQueueItem.status.in_([QueueStatus.COMPLETED, QueueStatus.DEAD_LETTERED]))

        result = await db.execute(stmt.execution_options(synchronize_session=False))
        results.append(RetentionResult(table=table, cutoff=cutoff, rows_deleted=result.rowcount or 0))

    await db.commit()
    await put_setting(db, LAST_RUN_KEY, now.isoformat(), description="Last time the data retention job ran")

    logger.info(
        "data_retention_enforced",
        tables=len(results),
        rows_deleted=sum(r.rows_deleted for r in results),
    )
    return results
