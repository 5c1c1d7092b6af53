from datetime import timedelta

import pytest

from flowmetrics.events.enums import DeploymentStatus, IncidentEventType
from flowmetrics.events.models import DeploymentRecord, IncidentEvent
from flowmetrics.metrics.dora import aggregate_dora, compute_dora, compute_dora_trend
from flowmetrics.streams.models import Repository


def _deploy(repo, deployed_at, environment="production", caused_incident=False, **kwargs) -> DeploymentRecord:
    return DeploymentRecord(
        tech_stream_id=repo.tech_stream_id,
        repo_id=repo.id,
        environment=environment,
        status=DeploymentStatus.SUCCESS,
        commit_sha=f"sha-{deployed_at.isoformat()}-{environment}",
        caused_incident=caused_incident,
        deployed_at=deployed_at,
        **kwargs,
    )


def _restored(repo, incident_id, occurred_at, minutes) -> IncidentEvent:
    return IncidentEvent(
        incident_id=incident_id,
        event_type=IncidentEventType.INCIDENT_RESOLVED,
        service_name="checkout-service",
        tech_stream_id=repo.tech_stream_id,
        occurred_at=occurred_at,
        resolved_at=occurred_at,
        time_to_restore_min=minutes,
    )


@pytest.mark.asyncio
async def test_dora_counts_production_deploys_only(db, repository, tech_stream, now):
    infra = Repository(
        tech_stream_id=tech_stream.id,
        github_org="acme",
        github_repo_name="terraform",
        full_name="acme/terraform",
        is_deployable=False,
    )
    db.add(infra)
    await db.flush()
    db.add_all([
        _deploy(repository, now - timedelta(days=1), caused_incident=True, lead_time_hrs=10.0),
        _deploy(repository, now - timedelta(days=3), lead_time_hrs=20.0),
        _deploy(repository, now - timedelta(days=10)),
        _deploy(repository, now),
        _deploy(repository, now - timedelta(days=2), environment="staging"),
        _deploy(repository, now - timedelta(days=4), trigger_type="config"),
        _deploy(infra, now - timedelta(days=5)),
        _deploy(repository, now - timedelta(days=45)),
    ])
    await db.commit()

    dora = await compute_dora(db, tech_stream.id, window_days=30, now=now)

    assert dora.deployment_count == 4
    assert dora.change_failure_rate == pytest.approx(25.0)
    assert dora.deployment_frequency == pytest.approx(4 / (30 / 7))
    assert dora.lead_time_sample_size == 2
    assert dora.lead_time_p50_hrs == pytest.approx(15.0)


@pytest.mark.asyncio
async def test_dora_restore_time(db, repository, tech_stream, now):
    db.add_all([
        _restored(repository, "INC-1", now - timedelta(days=1), 30),
        _restored(repository, "INC-2", now - timedelta(days=2), 60),
        _restored(repository, "INC-3", now - timedelta(days=3), 120),
        _restored(repository, "INC-OLD", now - timedelta(days=60), 600),
    ])
    await db.commit()

    dora = await compute_dora(db, tech_stream.id, window_days=30, now=now)

    assert dora.ttr_sample_size == 3
    assert dora.ttr_median_min == pytest.approx(60.0)
    assert dora.ttr_mean_min == pytest.approx(70.0)


def test_empty_aggregate_is_all_zero():
    dora = aggregate_dora([], [], 30)

    assert dora.deployment_count == 0
    assert dora.deployment_frequency == 0.0
    assert dora.change_failure_rate == 0.0
    assert dora.ttr_median_min == 0.0
    assert dora.lead_time_p50_hrs is None


@pytest.mark.asyncio
async def test_dora_trend_is_weekly_oldest_first(db, repository, tech_stream, now):
    db.add(_deploy(repository, now - timedelta(days=2), caused_incident=True))
    await db.commit()

    points = await compute_dora_trend(db, tech_stream.id, now=now)

    assert len(points) == 13
    assert points[0].week_start < points[-1].week_start
    assert sum(p.deployment_count for p in points) == 1
    assert points[-1].deployment_count == 1
    assert points[-1].change_failure_rate == pytest.approx(100.0)
