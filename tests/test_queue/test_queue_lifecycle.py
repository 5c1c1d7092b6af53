from datetime import timedelta

import pytest
from sqlalchemy import func, select

from flowmetrics.queue.models import (
    MAX_ATTEMPTS,
    EventQueueItem,
    EventSource,
    IllegalQueueTransitionError,
    QueueStatus,
)
from flowmetrics.queue.service import count_dead_lettered, count_pending, drain, enqueue
from flowmetrics.streams.models import DeliveryStream


async def _ok(db, item):
    return None


async def _boom(db, item):
    raise RuntimeError("normalizer exploded")


@pytest.mark.asyncio
async def test_enqueue_creates_pending_row(db):
    item = await enqueue(db, EventSource.JIRA, {"webhookEvent": "jira:issue_created"}, event_kind="jira:issue_created")

    assert item.status is QueueStatus.PENDING
    assert item.attempt_count == 0
    assert item.event_kind == "jira:issue_created"
    assert await count_pending(db) == 1


@pytest.mark.asyncio
async def test_successful_dispatch_completes_row(db):
    item = await enqueue(db, EventSource.DEPLOYMENT, {"status": "success"})

    result = await drain(db, dispatcher=_ok)

    assert result.processed == 1
    assert result.failed == 0
    refreshed = await db.get(EventQueueItem, item.id, populate_existing=True)
    assert refreshed.status is QueueStatus.COMPLETED
    assert refreshed.processed_at is not None
    assert await count_pending(db) == 0


@pytest.mark.asyncio
async def test_failure_is_retried_then_dead_lettered(db):
    item = await enqueue(db, EventSource.GITHUB, {"action": "opened"}, event_kind="pull_request")

    for attempt in range(1, MAX_ATTEMPTS):
        result = await drain(db, dispatcher=_boom)
        assert result.failed == 1
        assert result.dead_lettered == 0
        row = await db.get(EventQueueItem, item.id, populate_existing=True)
        assert row.status is QueueStatus.PENDING
        assert row.attempt_count == attempt

    result = await drain(db, dispatcher=_boom)

    assert result.dead_lettered == 1
    row = await db.get(EventQueueItem, item.id, populate_existing=True)
    assert row.status is QueueStatus.DEAD_LETTERED
    assert row.attempt_count == MAX_ATTEMPTS
    assert row.last_error.startswith("RuntimeError: normalizer exploded")
    assert await count_dead_lettered(db) == 1


@pytest.mark.asyncio
async def test_dead_lettered_rows_are_not_drained_again(db):
    await enqueue(db, EventSource.JIRA, {})
    for _ in range(MAX_ATTEMPTS):
        await drain(db, dispatcher=_boom)

    calls = []

    async def _record(db, item):
        calls.append(item.id)

    result = await drain(db, dispatcher=_record)

    assert calls == []
    assert result.processed == 0


@pytest.mark.asyncio
async def test_failed_dispatch_rolls_back_partial_writes(db):
    await enqueue(db, EventSource.JIRA, {})

    async def _half_done(db, item):
        db.add(DeliveryStream(name="ghost", display_name="Ghost"))
        await db.flush()
        raise ValueError("halfway")

    await drain(db, dispatcher=_half_done)

    count = await db.execute(select(func.count()).select_from(DeliveryStream))
    assert count.scalar_one() == 0


@pytest.mark.asyncio
async def test_drain_processes_oldest_first_up_to_batch_limit(db, now):
    first = await enqueue(db, EventSource.JIRA, {"n": 1})
    second = await enqueue(db, EventSource.JIRA, {"n": 2})
    third = await enqueue(db, EventSource.JIRA, {"n": 3})
    first.enqueued_at = now - timedelta(minutes=3)
    second.enqueued_at = now - timedelta(minutes=2)
    third.enqueued_at = now - timedelta(minutes=1)
    await db.commit()

    seen = []

    async def _record(db, item):
        seen.append(item.payload["n"])

    result = await drain(db, batch_limit=2, dispatcher=_record)

    assert seen == [1, 2]
    assert result.processed == 2
    assert await count_pending(db) == 1


@pytest.mark.asyncio
async def test_one_failure_does_not_block_the_rest_of_the_batch(db):
    await enqueue(db, EventSource.JIRA, {"fail": True})
    await enqueue(db, EventSource.JIRA, {"fail": False})

    async def _selective(db, item):
        if item.payload["fail"]:
            raise RuntimeError("bad row")

    result = await drain(db, dispatcher=_selective)

    assert result.processed == 1
    assert result.failed == 1


def test_terminal_rows_reject_transitions():
    item = EventQueueItem(event_source=EventSource.JIRA, payload={}, status=QueueStatus.COMPLETED, attempt_count=0)

    with pytest.raises(IllegalQueueTransitionError):
        item.record_failure("late failure")
    with pytest.raises(IllegalQueueTransitionError):
        item.mark_completed(None)


def test_record_failure_dead_letters_on_third_attempt():
    item = EventQueueItem(event_source=EventSource.JIRA, payload={}, status=QueueStatus.PENDING, attempt_count=0)

    statuses = [item.record_failure(f"error {i}") for i in range(MAX_ATTEMPTS)]

    assert statuses == [QueueStatus.PENDING, QueueStatus.PENDING, QueueStatus.DEAD_LETTERED]
    assert item.last_error == "error 2"
    assert QueueStatus.DEAD_LETTERED.is_terminal
    assert not QueueStatus.PENDING.is_terminal
