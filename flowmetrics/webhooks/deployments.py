"""Generic deployment feed, plus the deployment-record writer shared with GitHub."""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import PrCycle
from flowmetrics.events.enums import DeploymentStatus
from flowmetrics.events.models import DeploymentRecord
from flowmetrics.streams.models import Repository
from flowmetrics.streams.service import get_repository_by_full_name
from flowmetrics.timeutils import ensure_utc, parse_timestamp
from flowmetrics.webhooks.correlation import PRODUCTION, correlate_deploy
from flowmetrics.webhooks.errors import MalformedPayloadError

logger = structlog.get_logger()

_STATUS_ALIASES = {
    "success": DeploymentStatus.SUCCESS,
    "succeeded": DeploymentStatus.SUCCESS,
    "failed": DeploymentStatus.FAILED,
    "failure": DeploymentStatus.FAILED,
    "rolled_back": DeploymentStatus.ROLLED_BACK,
    "cancelled": DeploymentStatus.CANCELLED,
}


async def _linked_pr_cycle(
    db: AsyncSession, repo_id, pr_number: int | None, commit_sha: str
) -> PrCycle | None:
    query = select(PrCycle).where(PrCycle.repo_id == repo_id)
    if pr_number is not None:
        query = query.where(PrCycle.pr_number == pr_number)
    else:
        query = query.where(PrCycle.merge_commit_sha == commit_sha)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def record_deployment(
    db: AsyncSession,
    repo: Repository,
    environment: str,
    status: DeploymentStatus,
    commit_sha: str,
    deployed_at: datetime,
    pipeline_id: str | None = None,
    trigger_type: str | None = None,
    pr_number: int | None = None,
) -> DeploymentRecord | None:
    """Insert a deployment record unless its natural key already exists.

    Lead time is hours from the linked PR's opening to the deploy; the PR is
    found by number when given, else by merge commit sha. Production deploys
    are then correlated with incidents.
    """
    deployed_at = ensure_utc(deployed_at)
    existing = await db.execute(
        select(DeploymentRecord.id).where(
            DeploymentRecord.tech_stream_id == repo.tech_stream_id,
            DeploymentRecord.environment == environment,
            DeploymentRecord.commit_sha == commit_sha,
            DeploymentRecord.deployed_at == deployed_at,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return None

    lead_time_hrs = None
    linked_ticket_id = None
    pr_cycle = await _linked_pr_cycle(db, repo.id, pr_number, commit_sha)
    if pr_cycle is not None:
        lead_time_hrs = (deployed_at - ensure_utc(pr_cycle.opened_at)).total_seconds() / 3600
        linked_ticket_id = pr_cycle.linked_ticket_id
        pr_number = pr_cycle.pr_number

    record = DeploymentRecord(
        tech_stream_id=repo.tech_stream_id,
        repo_id=repo.id,
        environment=environment,
        status=status,
        commit_sha=commit_sha,
        pipeline_id=pipeline_id,
        trigger_type=trigger_type,
        linked_pr_number=pr_number,
        linked_ticket_id=linked_ticket_id,
        lead_time_hrs=lead_time_hrs,
        caused_incident=False,
        deployed_at=deployed_at,
    )
    db.add(record)
    await db.flush()
    logger.info(
        "deployment_recorded",
        repo=repo.full_name,
        environment=environment,
        status=status.value,
        lead_time_hrs=lead_time_hrs,
    )

    if environment == PRODUCTION:
        await correlate_deploy(db, record)
    return record


def _require(payload: dict, key: str):
    value = payload.get(key)
    if value is None or value == "":
        raise MalformedPayloadError("deployment", key)
    return value


async def ingest_deployment_event(db: AsyncSession, payload: dict) -> DeploymentRecord | None:
    repo_full_name = _require(payload, "repo_full_name")
    environment = _require(payload, "environment")
    commit_sha = _require(payload, "commit_sha")
    deployed_at = parse_timestamp(_require(payload, "deployed_at"))
    raw_status = str(_require(payload, "status")).lower()
    status = _STATUS_ALIASES.get(raw_status)
    if status is None:
        raise MalformedPayloadError("deployment", "status")

    repo = await get_repository_by_full_name(db, repo_full_name)
    if repo is None:
        logger.debug("deployment_repo_unresolved", repo=repo_full_name)
        return None

    pr_number = payload.get("pr_number")
    return await record_deployment(
        db,
        repo,
        environment=environment,
        status=status,
        commit_sha=commit_sha,
        deployed_at=deployed_at,
        pipeline_id=payload.get("pipeline_id"),
        trigger_type=payload.get("trigger_type"),
        pr_number=int(pr_number) if pr_number is not None else None,
    )
