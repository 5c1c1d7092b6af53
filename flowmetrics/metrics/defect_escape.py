import uuid
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import ESCAPE_STAGES
from flowmetrics.events.models import DefectEvent
from flowmetrics.metrics.schemas import DefectEscapeResult, StagePairCount
from flowmetrics.timeutils import ensure_utc, utc_now


def summarize_defect_escape(events: Iterable[DefectEvent]) -> DefectEscapeResult:
    """Escape rate over each ticket's latest classification.

    Tickets without an introduced-in stage count as unattributed and are left
    out of the introduced/found matrix.
    """
    latest: dict[str, DefectEvent] = {}
    for event in events:
        current = latest.get(event.ticket_id)
        if current is None or ensure_utc(event.event_timestamp) > ensure_utc(current.event_timestamp):
            latest[event.ticket_id] = event

    resolved = list(latest.values())
    count = len(resolved)
    if count == 0:
        return DefectEscapeResult(
            count=0, escape_rate_pct=0.0, unattributed_count=0, unattributed_pct=0.0, stage_pair_matrix=[]
        )

    escaped = sum(1 for e in resolved if (e.found_in_stage or "").lower() in ESCAPE_STAGES)
    unattributed = sum(1 for e in resolved if not e.introduced_in_stage)
    pairs = Counter(
        (e.introduced_in_stage, e.found_in_stage) for e in resolved if e.introduced_in_stage and e.found_in_stage
    )
    return DefectEscapeResult(
        count=count,
        escape_rate_pct=escaped / count * 100,
        unattributed_count=unattributed,
        unattributed_pct=unattributed / count * 100,
        stage_pair_matrix=[
            StagePairCount(introduced_in=introduced, found_in=found, count=n)
            for (introduced, found), n in sorted(pairs.items())
        ],
    )


async def compute_defect_escape(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> DefectEscapeResult:
    window_start = (now or utc_now()) - timedelta(days=window_days)
    query = select(DefectEvent).where(DefectEvent.event_timestamp >= window_start)
    if delivery_stream_id is not None:
        query = query.where(DefectEvent.delivery_stream_id == delivery_stream_id)
    result = await db.execute(query.order_by(DefectEvent.event_timestamp))
    return summarize_defect_escape(result.scalars().all())
