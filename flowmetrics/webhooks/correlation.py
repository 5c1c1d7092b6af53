"""Link production deployments to incidents that follow them within an hour."""

from datetime import timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import INCIDENT_TRIGGER_TYPES
from flowmetrics.events.models import DeploymentRecord, IncidentEvent
from flowmetrics.timeutils import ensure_utc

logger = structlog.get_logger()

CORRELATION_WINDOW = timedelta(minutes=60)
PRODUCTION = "production"


async def correlate_deploy(db: AsyncSession, record: DeploymentRecord) -> IncidentEvent | None:
    """Flag a production deploy if an incident was triggered within the window after it."""
    if record.environment != PRODUCTION:
        return None

    deployed_at = ensure_utc(record.deployed_at)
    result = await db.execute(
        select(IncidentEvent)
        .where(
            IncidentEvent.tech_stream_id == record.tech_stream_id,
            IncidentEvent.event_type.in_(list(INCIDENT_TRIGGER_TYPES)),
            IncidentEvent.occurred_at >= deployed_at,
            IncidentEvent.occurred_at <= deployed_at + CORRELATION_WINDOW,
        )
        .order_by(IncidentEvent.occurred_at)
        .limit(1)
    )
    incident = result.scalar_one_or_none()
    if incident is None:
        return None

    record.caused_incident = True
    record.incident_id = incident.incident_id
    await db.flush()
    logger.info("deploy_incident_correlated", deployment_id=str(record.id), incident_id=incident.incident_id)
    return incident


async def correlate_incident(db: AsyncSession, event: IncidentEvent) -> DeploymentRecord | None:
    """Attach an incident to the latest production deploy in the window before it started."""
    anchor = ensure_utc(event.occurred_at)
    trigger = await db.execute(
        select(IncidentEvent.occurred_at)
        .where(
            IncidentEvent.incident_id == event.incident_id,
            IncidentEvent.event_type.in_(list(INCIDENT_TRIGGER_TYPES)),
        )
        .order_by(IncidentEvent.occurred_at)
        .limit(1)
    )
    triggered_at = trigger.scalar_one_or_none()
    if triggered_at is not None:
        anchor = ensure_utc(triggered_at)

    result = await db.execute(
        select(DeploymentRecord)
        .where(
            DeploymentRecord.tech_stream_id == event.tech_stream_id,
            DeploymentRecord.environment == PRODUCTION,
            DeploymentRecord.deployed_at >= anchor - CORRELATION_WINDOW,
            DeploymentRecord.deployed_at <= anchor,
        )
        .order_by(DeploymentRecord.deployed_at.desc())
        .limit(1)
    )
    deploy = result.scalar_one_or_none()
    if deploy is None:
        return None

    deploy.caused_incident = True
    deploy.incident_id = event.incident_id
    event.related_deploy_id = deploy.id
    await db.flush()
    logger.info("incident_deploy_correlated", deployment_id=str(deploy.id), incident_id=event.incident_id)
    return deploy
