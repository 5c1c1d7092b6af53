import pytest
from sqlalchemy import select

from flowmetrics.events.enums import DeploymentStatus
from flowmetrics.events.models import DeploymentRecord, IncidentEvent
from flowmetrics.webhooks.deployments import ingest_deployment_event
from flowmetrics.webhooks.errors import MalformedPayloadError
from flowmetrics.webhooks.incidents import ingest_incident_event


def _deploy(deployed_at: str, **overrides) -> dict:
    payload = {
        "repo_full_name": "acme/checkout",
        "environment": "production",
        "commit_sha": "f00d",
        "deployed_at": deployed_at,
        "status": "succeeded",
        "pipeline_id": "deploy-checkout",
    }
    payload.update(overrides)
    return payload


def _incident(event_type: str, occurred_at: str, incident_id: str = "INC-1") -> dict:
    return {
        "incident_id": incident_id,
        "event_type": event_type,
        "service_name": "checkout-service",
        "severity": "sev2",
        "occurred_at": occurred_at,
    }


@pytest.mark.asyncio
async def test_deployment_status_aliases(db, repository):
    record = await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z"))

    assert record.status is DeploymentStatus.SUCCESS
    assert record.tech_stream_id == repository.tech_stream_id


@pytest.mark.asyncio
async def test_duplicate_deployment_is_a_noop(db, repository):
    await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z"))
    again = await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z"))

    assert again is None
    assert len((await db.execute(select(DeploymentRecord))).scalars().all()) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["repo_full_name", "environment", "commit_sha", "deployed_at", "status"])
async def test_deployment_missing_field_is_malformed(db, repository, missing):
    payload = _deploy("2026-03-10T10:00:00Z")
    del payload[missing]

    with pytest.raises(MalformedPayloadError) as exc_info:
        await ingest_deployment_event(db, payload)
    assert exc_info.value.field == missing


@pytest.mark.asyncio
async def test_unknown_deployment_status_is_malformed(db, repository):
    with pytest.raises(MalformedPayloadError):
        await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z", status="exploded"))


@pytest.mark.asyncio
async def test_incident_resolution_computes_restore_time_and_links_deploy(db, repository):
    deploy = await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z"))
    await ingest_incident_event(db, _incident("incident_opened", "2026-03-10T10:20:00Z"))

    resolved = await ingest_incident_event(db, _incident("incident_resolved", "2026-03-10T11:05:00Z"))

    assert resolved.time_to_restore_min == 45
    assert resolved.related_deploy_id == deploy.id
    record = await db.get(DeploymentRecord, deploy.id)
    assert record.caused_incident is True
    assert record.incident_id == "INC-1"


@pytest.mark.asyncio
async def test_deploy_arriving_after_incident_is_still_flagged(db, repository):
    await ingest_incident_event(db, _incident("alarm_triggered", "2026-03-10T10:30:00Z"))

    record = await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z"))

    assert record.caused_incident is True
    assert record.incident_id == "INC-1"


@pytest.mark.asyncio
async def test_deploy_outside_window_is_not_correlated(db, repository):
    deploy = await ingest_deployment_event(db, _deploy("2026-03-10T08:00:00Z"))
    await ingest_incident_event(db, _incident("incident_opened", "2026-03-10T09:30:00Z"))
    resolved = await ingest_incident_event(db, _incident("incident_resolved", "2026-03-10T10:00:00Z"))

    assert resolved.related_deploy_id is None
    record = await db.get(DeploymentRecord, deploy.id)
    assert record.caused_incident is False


@pytest.mark.asyncio
async def test_staging_deploy_is_never_correlated(db, repository):
    await ingest_incident_event(db, _incident("incident_opened", "2026-03-10T10:30:00Z"))

    record = await ingest_deployment_event(db, _deploy("2026-03-10T10:00:00Z", environment="staging"))

    assert record.caused_incident is False


@pytest.mark.asyncio
async def test_incident_for_unknown_service_is_skipped(db, repository):
    payload = _incident("incident_opened", "2026-03-10T10:30:00Z")
    payload["service_name"] = "nobody-deploys-this"

    assert await ingest_incident_event(db, payload) is None
    assert (await db.execute(select(IncidentEvent))).scalars().all() == []


@pytest.mark.asyncio
async def test_unknown_incident_event_type_is_malformed(db, repository):
    with pytest.raises(MalformedPayloadError):
        await ingest_incident_event(db, _incident("incident_exploded", "2026-03-10T10:30:00Z"))


@pytest.mark.asyncio
async def test_duplicate_incident_event_is_a_noop(db, repository):
    await ingest_incident_event(db, _incident("incident_opened", "2026-03-10T10:30:00Z"))
    again = await ingest_incident_event(db, _incident("incident_opened", "2026-03-10T10:30:00Z"))

    assert again is None
    assert len((await db.execute(select(IncidentEvent))).scalars().all()) == 1
