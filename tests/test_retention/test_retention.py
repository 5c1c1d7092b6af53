from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from flowmetrics.events.enums import WorkItemEventType
from flowmetrics.events.models import WorkItemEvent
from flowmetrics.materialization.models import DailyStreamMetric, StreamType
from flowmetrics.platform.service import MetricsConfig, get_setting
from flowmetrics.queue.models import EventQueueItem, EventSource, QueueStatus
from flowmetrics.retention.service import LAST_RUN_KEY, enforce_retention
from flowmetrics.timeutils import months_before


def _event(ticket_id, at) -> WorkItemEvent:
    return WorkItemEvent(ticket_id=ticket_id, event_type=WorkItemEventType.CREATED, event_timestamp=at)


def _queued(status, at) -> EventQueueItem:
    return EventQueueItem(
        event_source=EventSource.JIRA,
        payload={},
        status=status,
        attempt_count=0,
        enqueued_at=at,
    )


def test_months_before_clamps_day():
    march_31 = datetime(2026, 3, 31, 8, tzinfo=timezone.utc)

    assert months_before(march_31, 1) == datetime(2026, 2, 28, 8, tzinfo=timezone.utc)
    assert months_before(march_31, 3) == datetime(2025, 12, 31, 8, tzinfo=timezone.utc)
    assert months_before(march_31, 24) == datetime(2024, 3, 31, 8, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_old_events_are_deleted_recent_kept(db, now):
    db.add_all([
        _event("PAY-OLD", now - timedelta(days=800)),
        _event("PAY-NEW", now - timedelta(days=30)),
    ])
    await db.commit()

    results = await enforce_retention(db, MetricsConfig(), now=now)

    remaining = (await db.execute(select(WorkItemEvent.ticket_id))).scalars().all()
    assert remaining == ["PAY-NEW"]
    by_table = {r.table: r for r in results}
    assert by_table["work_item_events"].rows_deleted == 1
    assert by_table["work_item_events"].cutoff == months_before(now, 24)


@pytest.mark.asyncio
async def test_pending_queue_rows_survive_retention(db, now):
    old = now - timedelta(days=200)
    db.add_all([
        _queued(QueueStatus.PENDING, old),
        _queued(QueueStatus.COMPLETED, old),
        _queued(QueueStatus.DEAD_LETTERED, old),
        _queued(QueueStatus.COMPLETED, now - timedelta(days=5)),
    ])
    await db.commit()

    await enforce_retention(db, MetricsConfig(), now=now)

    statuses = sorted(s.value for s in (await db.execute(select(EventQueueItem.status))).scalars().all())
    assert statuses == ["completed", "pending"]


@pytest.mark.asyncio
async def test_daily_metrics_age_out_by_date(db, delivery_stream, now):
    for days_ago in (5, 1200):
        db.add(
            DailyStreamMetric(
                metric_date=(now - timedelta(days=days_ago)).date(),
                stream_type=StreamType.DELIVERY,
                stream_id=delivery_stream.id,
                metric_name="flow_efficiency",
                metric_value=50.0,
                metric_unit="percent",
                sample_size=1,
                computed_at=now,
            )
        )
    await db.commit()

    await enforce_retention(db, MetricsConfig(), now=now)

    dates = (await db.execute(select(DailyStreamMetric.metric_date))).scalars().all()
    assert dates == [(now - timedelta(days=5)).date()]


@pytest.mark.asyncio
async def test_overrides_and_unknown_tables(db, now):
    db.add(_event("PAY-1", now - timedelta(days=60)))
    await db.commit()
    config = MetricsConfig(retention_months={"work_item_events": 1, "no_such_table": 1})

    results = await enforce_retention(db, config, now=now)

    assert [r.table for r in results] == ["work_item_events"]
    assert results[0].rows_deleted == 1


@pytest.mark.asyncio
async def test_run_is_recorded_in_platform_settings(db, now):
    await enforce_retention(db, MetricsConfig(), now=now)

    assert await get_setting(db, LAST_RUN_KEY) == now.isoformat()


@pytest.mark.asyncio
async def test_survey_retention_default_is_tolerated_without_a_table(db, now):
    config = MetricsConfig()
    assert config.retention_months["survey_responses"] == 12

    results = await enforce_retention(db, config, now=now)

    tables = {r.table for r in results}
    assert "survey_responses" not in tables
    assert "work_item_events" in tables
