import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.config import settings
from flowmetrics.database import get_db
from flowmetrics.queue.models import EventSource
from flowmetrics.queue.schemas import EnqueueResponse
from flowmetrics.queue.service import enqueue
from flowmetrics.webhooks.errors import InvalidSignatureError
from flowmetrics.webhooks.signatures import verify_signature

logger = structlog.get_logger()
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_json(request: Request) -> tuple[bytes, dict]:
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")
    return raw_body, payload


async def _accept(db: AsyncSession, source: EventSource, payload: dict, **kwargs) -> EnqueueResponse:
    item = await enqueue(db, source, payload, **kwargs)
    return EnqueueResponse(queue_item_id=str(item.id))


@router.post("/github", status_code=status.HTTP_202_ACCEPTED, response_model=EnqueueResponse)
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(default=None),
    x_hub_signature_256: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Receive a GitHub App webhook.

    The signature is verified against the raw body before anything is queued;
    normalization happens later when the queue is drained.
    """
    raw_body, payload = await _read_json(request)

    if settings.GITHUB_WEBHOOK_SECRET:
        try:
            verify_signature(raw_body, x_hub_signature_256, settings.GITHUB_WEBHOOK_SECRET)
        except InvalidSignatureError:
            logger.warning("github_webhook_signature_rejected", event_kind=x_github_event)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    return await _accept(
        db, EventSource.GITHUB, payload, event_kind=x_github_event, signature=x_hub_signature_256
    )


@router.post("/jira", status_code=status.HTTP_202_ACCEPTED, response_model=EnqueueResponse)
async def jira_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    _, payload = await _read_json(request)
    return await _accept(db, EventSource.JIRA, payload, event_kind=payload.get("webhookEvent"))


@router.post("/deployments", status_code=status.HTTP_202_ACCEPTED, response_model=EnqueueResponse)
async def deployment_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    _, payload = await _read_json(request)
    return await _accept(db, EventSource.DEPLOYMENT, payload, event_kind=payload.get("status"))


@router.post("/incidents", status_code=status.HTTP_202_ACCEPTED, response_model=EnqueueResponse)
async def incident_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    _, payload = await _read_json(request)
    return await _accept(db, EventSource.INCIDENT, payload, event_kind=payload.get("event_type"))
