import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import OPEN_STAGES, PipelineStage, WorkItemEventType
from flowmetrics.events.models import WorkItemEvent
from flowmetrics.metrics.schemas import WipResult
from flowmetrics.timeutils import ensure_utc


async def current_stages(db: AsyncSession, delivery_stream_id: uuid.UUID | None = None) -> dict[str, PipelineStage]:
    """Latest known stage of every ticket that has no completion event."""
    staged = select(WorkItemEvent).where(
        WorkItemEvent.event_type.in_([WorkItemEventType.CREATED, WorkItemEventType.TRANSITIONED]),
        WorkItemEvent.to_stage.is_not(None),
    )
    completed = select(WorkItemEvent.ticket_id).where(WorkItemEvent.event_type == WorkItemEventType.COMPLETED)
    if delivery_stream_id is not None:
        staged = staged.where(WorkItemEvent.delivery_stream_id == delivery_stream_id)

    done = set((await db.execute(completed)).scalars().all())
    latest: dict[str, WorkItemEvent] = {}
    for event in (await db.execute(staged)).scalars().all():
        if event.ticket_id in done:
            continue
        current = latest.get(event.ticket_id)
        if current is None or ensure_utc(event.event_timestamp) > ensure_utc(current.event_timestamp):
            latest[event.ticket_id] = event
    return {ticket_id: PipelineStage(event.to_stage) for ticket_id, event in latest.items()}


async def compute_wip(db: AsyncSession, delivery_stream_id: uuid.UUID | None = None) -> WipResult:
    by_stage: dict[str, int] = {}
    for stage in (await current_stages(db, delivery_stream_id)).values():
        if stage in OPEN_STAGES:
            by_stage[stage.value] = by_stage.get(stage.value, 0) + 1
    return WipResult(by_stage=by_stage, total=sum(by_stage.values()))
