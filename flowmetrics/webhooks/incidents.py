import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import INCIDENT_RESOLVED_TYPES, INCIDENT_TRIGGER_TYPES, IncidentEventType
from flowmetrics.events.models import IncidentEvent
from flowmetrics.streams.service import get_repository_by_deploy_target
from flowmetrics.timeutils import ensure_utc, parse_timestamp
from flowmetrics.webhooks.correlation import correlate_incident
from flowmetrics.webhooks.errors import MalformedPayloadError

logger = structlog.get_logger()


async def ingest_incident_event(db: AsyncSession, payload: dict) -> IncidentEvent | None:
    """Record an alarm/incident lifecycle event from the monitoring feed.

    The owning tech stream comes from the repository deployed as
    ``service_name``. A resolution computes time-to-restore from the matching
    trigger event and correlates the incident with the deploy that preceded it.
    """
    for key in ("incident_id", "event_type", "service_name", "occurred_at"):
        if not payload.get(key):
            raise MalformedPayloadError("incident", key)
    try:
        event_type = IncidentEventType(payload["event_type"])
    except ValueError:
        raise MalformedPayloadError("incident", "event_type") from None

    incident_id = str(payload["incident_id"])
    service_name = payload["service_name"]
    occurred_at = parse_timestamp(payload["occurred_at"])

    repo = await get_repository_by_deploy_target(db, service_name)
    if repo is None:
        logger.debug("incident_service_unresolved", service_name=service_name)
        return None

    existing = await db.execute(
        select(IncidentEvent.id).where(
            IncidentEvent.incident_id == incident_id, IncidentEvent.event_type == event_type
        )
    )
    if existing.scalar_one_or_none() is not None:
        return None

    resolved_at = None
    time_to_restore_min = None
    if event_type in INCIDENT_RESOLVED_TYPES:
        trigger = await db.execute(
            select(IncidentEvent)
            .where(
                IncidentEvent.incident_id == incident_id,
                IncidentEvent.event_type.in_(list(INCIDENT_TRIGGER_TYPES)),
            )
            .order_by(IncidentEvent.occurred_at)
            .limit(1)
        )
        trigger_event = trigger.scalar_one_or_none()
        if trigger_event is not None:
            resolved_at = occurred_at
            time_to_restore_min = round((occurred_at - ensure_utc(trigger_event.occurred_at)).total_seconds() / 60)

    event = IncidentEvent(
        incident_id=incident_id,
        event_type=event_type,
        service_name=service_name,
        severity=payload.get("severity"),
        tech_stream_id=repo.tech_stream_id,
        occurred_at=occurred_at,
        resolved_at=resolved_at,
        time_to_restore_min=time_to_restore_min,
    )
    db.add(event)
    await db.flush()
    logger.info(
        "incident_event_recorded",
        incident_id=incident_id,
        event_type=event_type.value,
        time_to_restore_min=time_to_restore_min,
    )

    if event_type in INCIDENT_RESOLVED_TYPES:
        await correlate_incident(db, event)
    return event
