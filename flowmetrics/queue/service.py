"""Durable webhook queue: enqueue at ingress, drain from the scheduler.

Each drained row is processed in its own transaction. On success the
normalizer's writes and the row's ``completed`` status commit together; on
failure everything the normalizer wrote is rolled back and only the attempt
counter moves.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import assert_never

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.config import settings
from flowmetrics.queue.models import EventQueueItem, EventSource, QueueStatus
from flowmetrics.timeutils import utc_now

logger = structlog.get_logger()

Dispatcher = Callable[[AsyncSession, EventQueueItem], Awaitable[None]]

_MAX_ERROR_LENGTH = 2000


@dataclass
class DrainResult:
    processed: int = 0
    failed: int = 0
    dead_lettered: int = 0


async def enqueue(
    db: AsyncSession,
    source: EventSource,
    payload: dict,
    event_kind: str | None = None,
    signature: str | None = None,
) -> EventQueueItem:
    item = EventQueueItem(
        event_source=source,
        event_kind=event_kind,
        signature=signature,
        payload=payload,
        status=QueueStatus.PENDING,
        attempt_count=0,
        enqueued_at=utc_now(),
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info("event_enqueued", queue_item_id=str(item.id), source=source.value, event_kind=event_kind)
    return item


async def default_dispatch(db: AsyncSession, item: EventQueueItem) -> None:
    """Route a queue row to the normalizer for its source."""
    from flowmetrics.webhooks import deployments, github, incidents, jira

    source = item.event_source
    if source is EventSource.GITHUB:
        await github.process_github_event(db, item.event_kind or "", item.payload)
    elif source is EventSource.JIRA:
        await jira.process_jira_event(db, item.payload)
    elif source is EventSource.DEPLOYMENT:
        await deployments.ingest_deployment_event(db, item.payload)
    elif source is EventSource.INCIDENT:
        await incidents.ingest_incident_event(db, item.payload)
    else:
        assert_never(source)


async def drain(
    db: AsyncSession,
    batch_limit: int | None = None,
    dispatcher: Dispatcher | None = None,
) -> DrainResult:
    """Process up to ``batch_limit`` pending rows, oldest first."""
    limit = batch_limit if batch_limit is not None else settings.QUEUE_BATCH_LIMIT
    dispatch = dispatcher or default_dispatch
    result = DrainResult()

    id_rows = await db.execute(
        select(EventQueueItem.id)
        .where(EventQueueItem.status == QueueStatus.PENDING)
        .order_by(EventQueueItem.enqueued_at, EventQueueItem.id)
        .limit(limit)
    )
    item_ids: list[uuid.UUID] = list(id_rows.scalars().all())

    for item_id in item_ids:
        item = await db.get(EventQueueItem, item_id)
        if item is None or item.status is not QueueStatus.PENDING:
            continue
        try:
            await dispatch(db, item)
            item.mark_completed(utc_now())
            await db.commit()
            result.processed += 1
        except Exception as exc:
            await db.rollback()
            status = await _record_failure(db, item_id, exc)
            result.failed += 1
            if status is QueueStatus.DEAD_LETTERED:
                result.dead_lettered += 1

    if item_ids:
        logger.info(
            "event_queue_drained",
            processed=result.processed,
            failed=result.failed,
            dead_lettered=result.dead_lettered,
        )
    return result


async def _record_failure(db: AsyncSession, item_id: uuid.UUID, exc: Exception) -> QueueStatus:
    item = await db.get(EventQueueItem, item_id, populate_existing=True)
    error = f"{type(exc).__name__}: {exc}"[:_MAX_ERROR_LENGTH]
    status = item.record_failure(error)
    await db.commit()

    if status is QueueStatus.DEAD_LETTERED:
        logger.error(
            "event_queue_dead_lettered",
            queue_item_id=str(item_id),
            source=item.event_source.value,
            attempts=item.attempt_count,
            error=error,
        )
    else:
        logger.warning(
            "event_queue_dispatch_failed",
            queue_item_id=str(item_id),
            source=item.event_source.value,
            attempts=item.attempt_count,
            error=error,
        )
    return status


async def count_pending(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count()).select_from(EventQueueItem).where(EventQueueItem.status == QueueStatus.PENDING)
    )
    return result.scalar_one()


async def count_dead_lettered(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count()).select_from(EventQueueItem).where(EventQueueItem.status == QueueStatus.DEAD_LETTERED)
    )
    return result.scalar_one()
