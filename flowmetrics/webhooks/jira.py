"""Normalize Jira Cloud webhooks into work-item, defect and sprint records."""

import enum
from datetime import datetime
from typing import assert_never

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.service import recompute_work_item_cycle
from flowmetrics.events.enums import CYCLE_TRIGGERING_EVENTS, DefectEventType, Severity, WorkItemEventType
from flowmetrics.events.models import DefectEvent, WorkItemEvent
from flowmetrics.streams.models import Sprint
from flowmetrics.streams.service import (
    StatusMap,
    get_delivery_stream_by_name,
    get_tech_stream_by_name,
    load_status_map,
    project_key_of,
)
from flowmetrics.timeutils import parse_timestamp
from flowmetrics.webhooks.errors import MalformedPayloadError
from flowmetrics.webhooks.signatures import hash_identity

logger = structlog.get_logger()


class JiraEventKind(str, enum.Enum):
    CREATED = "created"
    TRANSITIONED = "transitioned"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    COMPLETED = "completed"


SPRINT_WEBHOOK_EVENTS = frozenset({"sprint_created", "sprint_started", "sprint_updated", "sprint_closed"})

FOUND_IN_STAGE_FIELD = "found in stage"
IMPEDIMENT = "Impediment"

# Jira priority name -> defect severity
_PRIORITY_TO_SEVERITY: dict[str, Severity] = {
    "highest": Severity.CRITICAL,
    "blocker": Severity.CRITICAL,
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "major": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "lowest": Severity.LOW,
    "minor": Severity.LOW,
    "trivial": Severity.LOW,
}


def severity_for_priority(priority: str | None) -> Severity | None:
    if not priority:
        return None
    return _PRIORITY_TO_SEVERITY.get(priority.lower())


def classify_jira_event(payload: dict) -> list[JiraEventKind]:
    """Work-item kinds carried by one issue webhook, in changelog order.

    A single update can both move the status and set the resolution, so more
    than one kind may come back.
    """
    webhook_event = payload.get("webhookEvent")
    if webhook_event == "jira:issue_created":
        return [JiraEventKind.CREATED]
    if webhook_event != "jira:issue_updated":
        return []

    kinds: list[JiraEventKind] = []
    for item in (payload.get("changelog") or {}).get("items") or []:
        field = item.get("field")
        kind = None
        if field == "status":
            kind = JiraEventKind.TRANSITIONED
        elif field == "Flagged" and item.get("toString") == IMPEDIMENT:
            kind = JiraEventKind.BLOCKED
        elif field == "Flagged" and not item.get("toString") and item.get("fromString"):
            kind = JiraEventKind.UNBLOCKED
        elif field == "resolution" and item.get("toString"):
            kind = JiraEventKind.COMPLETED
        if kind is not None and kind not in kinds:
            kinds.append(kind)
    return kinds


def _changelog_item(payload: dict, field: str) -> dict | None:
    for item in (payload.get("changelog") or {}).get("items") or []:
        if (item.get("field") or "").lower() == field.lower():
            return item
    return None


def _named(value) -> str | None:
    """Custom select fields arrive as a bare string or as ``{"value": ...}``."""
    if isinstance(value, dict):
        return value.get("value") or value.get("name")
    return value or None


async def process_jira_event(db: AsyncSession, payload: dict) -> None:
    webhook_event = payload.get("webhookEvent") or ""
    if webhook_event in SPRINT_WEBHOOK_EVENTS:
        await _upsert_sprint(db, payload.get("sprint") or {}, webhook_event)
        return

    kinds = classify_jira_event(payload)
    reclassification = _changelog_item(payload, FOUND_IN_STAGE_FIELD)
    if not kinds and reclassification is None:
        logger.debug("jira_event_ignored", webhook_event=webhook_event)
        return

    issue = payload.get("issue") or {}
    ticket_id = issue.get("key")
    if not ticket_id:
        raise MalformedPayloadError("jira", "issue.key")
    if payload.get("timestamp") is None:
        raise MalformedPayloadError("jira", "timestamp")
    event_timestamp = parse_timestamp(payload["timestamp"])
    fields = issue.get("fields") or {}

    delivery_stream = await get_delivery_stream_by_name(db, _named(fields.get("customfield_delivery_stream")))
    delivery_stream_id = delivery_stream.id if delivery_stream else None
    sprint_id = await _sync_issue_sprint(db, fields.get("sprint"), delivery_stream_id)
    status_map = await load_status_map(db, project_key_of(ticket_id))

    recorded = False
    for kind in kinds:
        recorded |= await _record_work_item_event(
            db, kind, ticket_id, event_timestamp, payload, fields, status_map, delivery_stream_id, sprint_id
        )

    is_bug = ((fields.get("issuetype") or {}).get("name") or "").lower() == "bug"
    if is_bug and JiraEventKind.CREATED in kinds:
        await _record_defect_event(
            db,
            ticket_id,
            DefectEventType.LOGGED,
            event_timestamp,
            fields,
            delivery_stream_id,
            found_in_stage=_named(fields.get("customfield_found_in_stage")) or "unknown",
        )
    if is_bug and reclassification is not None and reclassification.get("toString"):
        await _record_defect_event(
            db,
            ticket_id,
            DefectEventType.RECLASSIFIED,
            event_timestamp,
            fields,
            delivery_stream_id,
            found_in_stage=reclassification["toString"],
        )

    if recorded and any(WorkItemEventType(kind.value) in CYCLE_TRIGGERING_EVENTS for kind in kinds):
        await recompute_work_item_cycle(db, ticket_id)


async def _record_work_item_event(
    db: AsyncSession,
    kind: JiraEventKind,
    ticket_id: str,
    event_timestamp: datetime,
    payload: dict,
    fields: dict,
    status_map: StatusMap,
    delivery_stream_id,
    sprint_id: str | None,
) -> bool:
    event_type = WorkItemEventType(kind.value)
    existing = await db.execute(
        select(WorkItemEvent.id).where(
            WorkItemEvent.ticket_id == ticket_id,
            WorkItemEvent.event_type == event_type,
            WorkItemEvent.event_timestamp == event_timestamp,
        )
    )
    if existing.scalar_one_or_none() is not None:
        logger.debug("jira_event_duplicate", ticket_id=ticket_id, event_type=event_type.value)
        return False

    from_stage = to_stage = None
    blocked_reason = None
    blocking_tech_stream_id = None
    if kind is JiraEventKind.CREATED:
        to_stage = status_map.stage_for((fields.get("status") or {}).get("name"))
    elif kind is JiraEventKind.TRANSITIONED:
        status_item = _changelog_item(payload, "status") or {}
        from_stage = status_map.stage_for(status_item.get("fromString"))
        to_stage = status_map.stage_for(status_item.get("toString"))
    elif kind is JiraEventKind.BLOCKED:
        blocked_reason = (payload.get("comment") or {}).get("body")
        blocking = await get_tech_stream_by_name(db, _named(fields.get("customfield_blocking_tech_stream")))
        blocking_tech_stream_id = blocking.id if blocking else None
    elif kind in (JiraEventKind.UNBLOCKED, JiraEventKind.COMPLETED):
        pass
    else:
        assert_never(kind)

    db.add(
        WorkItemEvent(
            source="jira",
            ticket_id=ticket_id,
            event_type=event_type,
            delivery_stream_id=delivery_stream_id,
            ticket_type=(fields.get("issuetype") or {}).get("name"),
            from_stage=from_stage,
            to_stage=to_stage,
            priority=(fields.get("priority") or {}).get("name"),
            story_points=fields.get("story_points"),
            labels=fields.get("labels"),
            sprint_id=sprint_id,
            blocked_reason=blocked_reason,
            blocking_tech_stream_id=blocking_tech_stream_id,
            assignee_hash=hash_identity((fields.get("assignee") or {}).get("accountId")),
            event_timestamp=event_timestamp,
        )
    )
    await db.flush()
    logger.info(
        "jira_event_recorded",
        ticket_id=ticket_id,
        event_type=event_type.value,
        to_stage=to_stage.value if to_stage else None,
    )
    return True


async def _record_defect_event(
    db: AsyncSession,
    ticket_id: str,
    event_type: DefectEventType,
    event_timestamp: datetime,
    fields: dict,
    delivery_stream_id,
    found_in_stage: str,
) -> None:
    existing = await db.execute(
        select(DefectEvent.id).where(
            DefectEvent.ticket_id == ticket_id,
            DefectEvent.event_type == event_type,
            DefectEvent.event_timestamp == event_timestamp,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return

    db.add(
        DefectEvent(
            ticket_id=ticket_id,
            event_type=event_type,
            severity=severity_for_priority((fields.get("priority") or {}).get("name")),
            found_in_stage=found_in_stage.lower(),
            introduced_in_stage=(_named(fields.get("customfield_introduced_in_stage")) or "").lower() or None,
            delivery_stream_id=delivery_stream_id,
            event_timestamp=event_timestamp,
        )
    )
    await db.flush()
    logger.info("defect_event_recorded", ticket_id=ticket_id, event_type=event_type.value, found_in=found_in_stage)


def _sprint_state(raw_state: str | None, webhook_event: str | None) -> str:
    if webhook_event == "sprint_started":
        return "active"
    if webhook_event == "sprint_closed":
        return "closed"
    state = (raw_state or "future").lower()
    return state if state in ("future", "active", "closed") else "future"


async def _upsert_sprint(
    db: AsyncSession,
    sprint_payload: dict,
    webhook_event: str | None = None,
    delivery_stream_id=None,
) -> Sprint:
    if sprint_payload.get("id") is None:
        raise MalformedPayloadError("jira", "sprint.id")
    jira_sprint_id = str(sprint_payload["id"])

    result = await db.execute(select(Sprint).where(Sprint.jira_sprint_id == jira_sprint_id))
    sprint = result.scalar_one_or_none()
    if sprint is None:
        sprint = Sprint(jira_sprint_id=jira_sprint_id, name=sprint_payload.get("name") or jira_sprint_id)
        db.add(sprint)

    if sprint_payload.get("name"):
        sprint.name = sprint_payload["name"]
    start = parse_timestamp(sprint_payload.get("startDate"))
    end = parse_timestamp(sprint_payload.get("endDate"))
    if start:
        sprint.start_date = start.date()
    if end:
        sprint.end_date = end.date()
    if sprint_payload.get("goal") is not None:
        sprint.goal = sprint_payload["goal"]
    if webhook_event or sprint_payload.get("state"):
        sprint.state = _sprint_state(sprint_payload.get("state"), webhook_event)
    if delivery_stream_id is not None and sprint.delivery_stream_id is None:
        sprint.delivery_stream_id = delivery_stream_id

    await db.flush()
    logger.info("jira_sprint_synced", jira_sprint_id=jira_sprint_id, state=sprint.state)
    return sprint


async def _sync_issue_sprint(db: AsyncSession, sprint_field, delivery_stream_id) -> str | None:
    """Issues carry their sprint inline; keep the Sprint row and its stream link current."""
    if isinstance(sprint_field, list):
        sprint_field = sprint_field[-1] if sprint_field else None
    if not isinstance(sprint_field, dict) or sprint_field.get("id") is None:
        return None
    sprint = await _upsert_sprint(db, sprint_field, delivery_stream_id=delivery_stream_id)
    return sprint.jira_sprint_id
