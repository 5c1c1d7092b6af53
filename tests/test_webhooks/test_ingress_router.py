import json

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from flowmetrics.config import settings
from flowmetrics.queue.models import EventQueueItem, EventSource
from flowmetrics.webhooks.signatures import compute_signature


async def _queued(db) -> int:
    result = await db.execute(select(func.count()).select_from(EventQueueItem))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_jira_webhook_is_accepted_and_queued(client: AsyncClient, db):
    response = await client.post(
        "/api/v1/webhooks/jira",
        json={"webhookEvent": "jira:issue_created", "issue": {"key": "PAY-1"}},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "accepted"
    item = (await db.execute(select(EventQueueItem))).scalar_one()
    assert str(item.id) == body["queue_item_id"]
    assert item.event_source is EventSource.JIRA
    assert item.event_kind == "jira:issue_created"


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["jira", "deployments", "incidents", "github"])
async def test_malformed_json_is_rejected(client: AsyncClient, db, path):
    response = await client.post(
        f"/api/v1/webhooks/{path}",
        content=b"{not json",
        headers={"Content-Type": "application/json", "X-GitHub-Event": "pull_request"},
    )

    assert response.status_code == 400
    assert await _queued(db) == 0


@pytest.mark.asyncio
async def test_non_object_body_is_rejected(client: AsyncClient, db):
    response = await client.post("/api/v1/webhooks/deployments", json=[1, 2, 3])

    assert response.status_code == 400
    assert await _queued(db) == 0


@pytest.mark.asyncio
async def test_github_signature_mismatch_is_rejected(client: AsyncClient, db, monkeypatch):
    monkeypatch.setattr(settings, "GITHUB_WEBHOOK_SECRET", "s3cret")
    body = json.dumps({"action": "opened"}).encode()

    response = await client.post(
        "/api/v1/webhooks/github",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-GitHub-Event": "pull_request",
            "X-Hub-Signature-256": compute_signature(body, "wrong-secret"),
        },
    )

    assert response.status_code == 401
    assert await _queued(db) == 0


@pytest.mark.asyncio
async def test_github_missing_signature_is_rejected_when_secret_set(client: AsyncClient, db, monkeypatch):
    monkeypatch.setattr(settings, "GITHUB_WEBHOOK_SECRET", "s3cret")

    response = await client.post(
        "/api/v1/webhooks/github",
        json={"action": "opened"},
        headers={"X-GitHub-Event": "pull_request"},
    )

    assert response.status_code == 401
    assert await _queued(db) == 0


@pytest.mark.asyncio
async def test_github_valid_signature_is_queued_with_event_kind(client: AsyncClient, db, monkeypatch):
    monkeypatch.setattr(settings, "GITHUB_WEBHOOK_SECRET", "s3cret")
    body = json.dumps({"action": "opened"}).encode()
    signature = compute_signature(body, "s3cret")

    response = await client.post(
        "/api/v1/webhooks/github",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-GitHub-Event": "pull_request",
            "X-Hub-Signature-256": signature,
        },
    )

    assert response.status_code == 202
    item = (await db.execute(select(EventQueueItem))).scalar_one()
    assert item.event_source is EventSource.GITHUB
    assert item.event_kind == "pull_request"
    assert item.signature == signature


@pytest.mark.asyncio
async def test_queue_stats_reports_backlog(client: AsyncClient):
    await client.post("/api/v1/webhooks/incidents", json={"event_type": "incident_opened"})
    await client.post("/api/v1/webhooks/deployments", json={"status": "success"})

    response = await client.get("/api/v1/queue/stats")

    assert response.status_code == 200
    assert response.json() == {"pending": 2, "dead_lettered": 0}


@pytest.mark.asyncio
async def test_manual_drain_endpoint(client: AsyncClient):
    # Unresolvable deployment: recorded as processed, nothing written.
    await client.post(
        "/api/v1/webhooks/deployments",
        json={
            "repo_full_name": "acme/unknown",
            "environment": "production",
            "commit_sha": "abc",
            "deployed_at": "2026-03-10T10:00:00Z",
            "status": "success",
        },
    )

    response = await client.post("/api/v1/queue/drain")

    assert response.status_code == 200
    assert response.json() == {"processed": 1, "failed": 0, "dead_lettered": 0}
