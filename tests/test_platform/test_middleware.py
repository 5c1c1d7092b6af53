import pytest
from httpx import ASGITransport, AsyncClient
from structlog.testing import capture_logs

from flowmetrics.main import create_app


@pytest.mark.asyncio
async def test_unhandled_route_error_becomes_500():
    app = create_app()

    @app.get("/api/v1/explode")
    async def explode():
        raise RuntimeError("boom")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        with capture_logs() as logs:
            response = await c.get("/api/v1/explode")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    failures = [entry for entry in logs if entry["event"] == "api_request_failed"]
    assert failures[0]["error_type"] == "RuntimeError"
    assert failures[0]["path"] == "/api/v1/explode"


@pytest.mark.asyncio
async def test_requests_are_logged_except_health(client: AsyncClient):
    with capture_logs() as logs:
        await client.get("/health")
        await client.get("/api/v1/queue/stats")

    events = [entry for entry in logs if entry["event"] in ("api_request", "webhook_request")]
    assert [(e["event"], e["path"], e["status"]) for e in events] == [("api_request", "/api/v1/queue/stats", 200)]
