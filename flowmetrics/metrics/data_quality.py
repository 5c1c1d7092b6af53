"""How much of the raw event stream can be attributed: PR links, stream tags, deploy traces."""

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import PrEventType
from flowmetrics.events.models import DeploymentRecord, PrEvent, WorkItemEvent
from flowmetrics.metrics.schemas import DataQualityResult, DataQualityWarning
from flowmetrics.timeutils import utc_now
from flowmetrics.webhooks.correlation import PRODUCTION

# Rates below these percentages produce a warning.
TARGETS: dict[str, float] = {
    "pr_linkage_rate": 80,
    "ticket_tagging_rate": 90,
    "deployment_traceability_rate": 80,
}


def _rate(hits: int, total: int) -> float:
    return hits / total * 100 if total else 0.0


async def compute_data_quality(
    db: AsyncSession,
    window_days: int = 30,
    now: datetime | None = None,
) -> DataQualityResult:
    """Attribution rates over the window, with a warning for each rate under its target.

    A rate with nothing to measure is reported as 0 but never warns.
    """
    window_start = (now or utc_now()) - timedelta(days=window_days)

    pr_links = (
        await db.execute(
            select(PrEvent.linked_ticket_id).where(
                PrEvent.event_type == PrEventType.OPENED,
                PrEvent.event_timestamp >= window_start,
            )
        )
    ).scalars().all()

    ticket_rows = await db.execute(
        select(WorkItemEvent.ticket_id, WorkItemEvent.delivery_stream_id).where(
            WorkItemEvent.event_timestamp >= window_start
        )
    )
    tagged_tickets: dict[str, bool] = defaultdict(bool)
    for ticket_id, delivery_stream_id in ticket_rows.all():
        tagged_tickets[ticket_id] |= delivery_stream_id is not None

    deploy_links = (
        await db.execute(
            select(DeploymentRecord.linked_ticket_id).where(
                DeploymentRecord.environment == PRODUCTION,
                DeploymentRecord.deployed_at >= window_start,
            )
        )
    ).scalars().all()

    totals = {
        "pr_linkage_rate": (sum(1 for t in pr_links if t), len(pr_links)),
        "ticket_tagging_rate": (sum(tagged_tickets.values()), len(tagged_tickets)),
        "deployment_traceability_rate": (sum(1 for t in deploy_links if t), len(deploy_links)),
    }
    rates = {metric: _rate(hits, total) for metric, (hits, total) in totals.items()}
    warnings = [
        DataQualityWarning(metric=metric, rate=rates[metric], target=target)
        for metric, target in TARGETS.items()
        if totals[metric][1] and rates[metric] < target
    ]

    return DataQualityResult(
        window_days=window_days,
        pr_linkage_rate=rates["pr_linkage_rate"],
        pr_total=len(pr_links),
        ticket_tagging_rate=rates["ticket_tagging_rate"],
        ticket_total=len(tagged_tickets),
        deployment_traceability_rate=rates["deployment_traceability_rate"],
        deployment_total=len(deploy_links),
        warnings=warnings,
    )
