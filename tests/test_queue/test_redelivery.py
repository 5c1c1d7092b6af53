from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.events.models import WorkItemEvent
from flowmetrics.queue.models import EventQueueItem, QueueStatus
from flowmetrics.queue.service import drain


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _completion_payload() -> dict:
    return {
        "webhookEvent": "jira:issue_updated",
        "timestamp": _epoch_ms(datetime(2026, 3, 12, 9, 0, tzinfo=timezone.utc)),
        "issue": {
            "key": "PAY-7",
            "fields": {
                "issuetype": {"name": "Story"},
                "status": {"name": "Done"},
                "customfield_delivery_stream": "payments",
            },
        },
        "changelog": {
            "items": [
                {"field": "status", "fromString": "In Progress", "toString": "Done"},
                {"field": "resolution", "fromString": None, "toString": "Done"},
            ]
        },
    }


def _start_payload() -> dict:
    return {
        "webhookEvent": "jira:issue_updated",
        "timestamp": _epoch_ms(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)),
        "issue": {"key": "PAY-7", "fields": {"customfield_delivery_stream": "payments"}},
        "changelog": {"items": [{"field": "status", "fromString": "Backlog", "toString": "In Progress"}]},
    }


@pytest.mark.asyncio
async def test_redelivered_webhook_produces_one_event(client, db, delivery_stream, status_mappings):
    for payload in (_start_payload(), _completion_payload(), _completion_payload()):
        response = await client.post("/api/v1/webhooks/jira", json=payload)
        assert response.status_code == 202

    result = await drain(db)

    assert result.processed == 3
    events = (await db.execute(select(WorkItemEvent).where(WorkItemEvent.ticket_id == "PAY-7"))).scalars().all()
    assert sorted(e.event_type.value for e in events) == ["completed", "transitioned", "transitioned"]

    statuses = (await db.execute(select(EventQueueItem.status))).scalars().all()
    assert all(s is QueueStatus.COMPLETED for s in statuses)

    cycles = await db.execute(select(func.count()).select_from(WorkItemCycle))
    assert cycles.scalar_one() == 1


@pytest.mark.asyncio
async def test_reprocessing_does_not_change_derived_cycle(client, db, delivery_stream, status_mappings):
    await client.post("/api/v1/webhooks/jira", json=_start_payload())
    await client.post("/api/v1/webhooks/jira", json=_completion_payload())
    await drain(db)
    first = (await db.execute(select(WorkItemCycle))).scalar_one()
    cycle_time = first.cycle_time_days

    await client.post("/api/v1/webhooks/jira", json=_completion_payload())
    await drain(db)

    again = (await db.execute(select(WorkItemCycle).execution_options(populate_existing=True))).scalar_one()
    assert again.cycle_time_days == pytest.approx(cycle_time)
    assert again.cycle_time_days == pytest.approx(2.0)
    assert again.flow_efficiency_pct == pytest.approx(100.0)
