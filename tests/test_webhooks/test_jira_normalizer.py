from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.events.enums import DefectEventType, PipelineStage, Severity, WorkItemEventType
from flowmetrics.events.models import DefectEvent, WorkItemEvent
from flowmetrics.streams.models import Sprint
from flowmetrics.webhooks.errors import MalformedPayloadError
from flowmetrics.webhooks.jira import JiraEventKind, classify_jira_event, process_jira_event


def _ts(day: int, hour: int = 9) -> int:
    return int(datetime(2026, 3, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def _issue(key: str = "PAY-1", **fields) -> dict:
    base = {"issuetype": {"name": "Story"}, "customfield_delivery_stream": {"value": "payments"}}
    base.update(fields)
    return {"key": key, "fields": base}


def _created(day: int, key: str = "PAY-1", **fields) -> dict:
    return {
        "webhookEvent": "jira:issue_created",
        "timestamp": _ts(day),
        "issue": _issue(key, status={"name": "Backlog"}, **fields),
    }


def _updated(day: int, items: list[dict], key: str = "PAY-1", **extra) -> dict:
    payload = {
        "webhookEvent": "jira:issue_updated",
        "timestamp": _ts(day),
        "issue": _issue(key),
        "changelog": {"items": items},
    }
    payload.update(extra)
    return payload


def _status(from_name: str, to_name: str) -> dict:
    return {"field": "status", "fromString": from_name, "toString": to_name}


def test_classify_created():
    assert classify_jira_event({"webhookEvent": "jira:issue_created"}) == [JiraEventKind.CREATED]


def test_classify_status_and_resolution_in_one_update():
    payload = _updated(5, [_status("QA", "Done"), {"field": "resolution", "toString": "Fixed"}])

    assert classify_jira_event(payload) == [JiraEventKind.TRANSITIONED, JiraEventKind.COMPLETED]


def test_classify_flag_set_and_cleared():
    flagged = _updated(5, [{"field": "Flagged", "fromString": None, "toString": "Impediment"}])
    cleared = _updated(5, [{"field": "Flagged", "fromString": "Impediment", "toString": ""}])

    assert classify_jira_event(flagged) == [JiraEventKind.BLOCKED]
    assert classify_jira_event(cleared) == [JiraEventKind.UNBLOCKED]


def test_classify_ignores_unrelated_updates():
    assert classify_jira_event(_updated(5, [{"field": "summary", "toString": "new title"}])) == []
    assert classify_jira_event({"webhookEvent": "comment_created"}) == []


@pytest.mark.asyncio
async def test_ticket_lifecycle_produces_cycle(db, delivery_stream, status_mappings):
    await process_jira_event(db, _created(2))
    await process_jira_event(db, _updated(3, [_status("Backlog", "In Progress")]))
    await process_jira_event(db, _updated(5, [_status("In Progress", "In Review")]))
    await process_jira_event(
        db, _updated(6, [_status("In Review", "Done"), {"field": "resolution", "toString": "Done"}])
    )

    events = (await db.execute(select(WorkItemEvent).order_by(WorkItemEvent.event_timestamp))).scalars().all()
    assert [e.event_type for e in events][:2] == [WorkItemEventType.CREATED, WorkItemEventType.TRANSITIONED]
    assert events[0].to_stage is PipelineStage.BACKLOG
    assert events[1].from_stage is PipelineStage.BACKLOG
    assert events[1].to_stage is PipelineStage.DEV
    assert all(e.delivery_stream_id == delivery_stream.id for e in events)

    cycle = (await db.execute(select(WorkItemCycle))).scalar_one()
    assert cycle.lead_time_days == pytest.approx(4.0)
    assert cycle.active_time_days == pytest.approx(2.0)
    assert cycle.wait_time_days == pytest.approx(1.0)
    assert cycle.cycle_time_days == pytest.approx(3.0)
    assert cycle.flow_efficiency_pct == pytest.approx(200 / 3)
    assert cycle.delivery_stream_id == delivery_stream.id


@pytest.mark.asyncio
async def test_redelivered_jira_event_is_a_noop(db, delivery_stream, status_mappings):
    payload = _updated(3, [_status("Backlog", "In Progress")])

    await process_jira_event(db, payload)
    await process_jira_event(db, payload)

    events = (await db.execute(select(WorkItemEvent))).scalars().all()
    assert len(events) == 1


@pytest.mark.asyncio
async def test_string_epoch_timestamp_is_accepted(db, delivery_stream, status_mappings):
    payload = _created(2)
    payload["timestamp"] = str(payload["timestamp"])

    await process_jira_event(db, payload)

    event = (await db.execute(select(WorkItemEvent))).scalar_one()
    assert event.event_timestamp.replace(tzinfo=timezone.utc) == datetime(2026, 3, 2, 9, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_unmapped_status_leaves_stage_empty(db, delivery_stream, status_mappings):
    await process_jira_event(db, _updated(3, [_status("Backlog", "Somewhere New")]))

    event = (await db.execute(select(WorkItemEvent))).scalar_one()
    assert event.to_stage is None


@pytest.mark.asyncio
async def test_blocked_event_records_blocking_tech_stream(db, delivery_stream, tech_stream, status_mappings):
    payload = _updated(
        4,
        [{"field": "Flagged", "fromString": None, "toString": "Impediment"}],
        comment={"body": "Waiting on platform API"},
    )
    payload["issue"]["fields"]["customfield_blocking_tech_stream"] = "platform"

    await process_jira_event(db, payload)

    event = (await db.execute(select(WorkItemEvent))).scalar_one()
    assert event.event_type is WorkItemEventType.BLOCKED
    assert event.blocking_tech_stream_id == tech_stream.id
    assert event.blocked_reason == "Waiting on platform API"


@pytest.mark.asyncio
async def test_bug_creation_logs_defect(db, delivery_stream, status_mappings):
    payload = _created(
        4,
        key="PAY-9",
        issuetype={"name": "Bug"},
        priority={"name": "High"},
        customfield_found_in_stage={"value": "UAT"},
        customfield_introduced_in_stage="Dev",
    )

    await process_jira_event(db, payload)

    defect = (await db.execute(select(DefectEvent))).scalar_one()
    assert defect.event_type is DefectEventType.LOGGED
    assert defect.found_in_stage == "uat"
    assert defect.introduced_in_stage == "dev"
    assert defect.severity is Severity.HIGH
    assert defect.delivery_stream_id == delivery_stream.id


@pytest.mark.asyncio
async def test_found_in_stage_change_reclassifies_bug(db, delivery_stream, status_mappings):
    payload = _updated(6, [{"field": "Found In Stage", "fromString": "QA", "toString": "Production"}], key="PAY-9")
    payload["issue"]["fields"]["issuetype"] = {"name": "Bug"}

    await process_jira_event(db, payload)

    defect = (await db.execute(select(DefectEvent))).scalar_one()
    assert defect.event_type is DefectEventType.RECLASSIFIED
    assert defect.found_in_stage == "production"


@pytest.mark.asyncio
async def test_sprint_webhook_upserts_sprint(db, delivery_stream):
    sprint = {"id": 77, "name": "Sprint 14", "startDate": "2026-03-09T00:00:00Z", "endDate": "2026-03-20T00:00:00Z"}

    await process_jira_event(db, {"webhookEvent": "sprint_created", "sprint": dict(sprint, state="future")})
    await process_jira_event(db, {"webhookEvent": "sprint_started", "sprint": sprint})

    row = (await db.execute(select(Sprint))).scalar_one()
    assert row.jira_sprint_id == "77"
    assert row.state == "active"
    assert row.start_date == date(2026, 3, 9)
    assert row.end_date == date(2026, 3, 20)


@pytest.mark.asyncio
async def test_issue_sprint_field_links_sprint_to_stream(db, delivery_stream, status_mappings):
    payload = _updated(3, [_status("Backlog", "In Progress")])
    payload["issue"]["fields"]["sprint"] = [{"id": 76, "name": "Sprint 13"}, {"id": 77, "name": "Sprint 14"}]

    await process_jira_event(db, payload)

    event = (await db.execute(select(WorkItemEvent))).scalar_one()
    assert event.sprint_id == "77"
    sprint = (await db.execute(select(Sprint))).scalar_one()
    assert sprint.delivery_stream_id == delivery_stream.id


@pytest.mark.asyncio
async def test_missing_issue_key_is_malformed(db):
    payload = _updated(3, [_status("Backlog", "In Progress")])
    del payload["issue"]["key"]

    with pytest.raises(MalformedPayloadError):
        await process_jira_event(db, payload)
