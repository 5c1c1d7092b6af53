"""Normalize GitHub App webhooks into PR, CI/CD and deployment events."""

import enum
from typing import assert_never

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.service import recompute_pr_cycle, ticket_delivery_stream_id
from flowmetrics.events.enums import CicdEventType, DeploymentStatus, PrEventType
from flowmetrics.events.models import CicdEvent, PrEvent
from flowmetrics.streams.models import Repository, TechStream
from flowmetrics.streams.service import get_repository, get_tech_stream_by_install_id
from flowmetrics.timeutils import parse_timestamp
from flowmetrics.webhooks.correlation import PRODUCTION
from flowmetrics.webhooks.deployments import record_deployment
from flowmetrics.webhooks.errors import MalformedPayloadError
from flowmetrics.webhooks.signatures import hash_identity
from flowmetrics.webhooks.ticket_refs import compile_ticket_pattern, extract_ticket_reference

logger = structlog.get_logger()


class GithubEventKind(str, enum.Enum):
    PULL_REQUEST = "pull_request"
    PULL_REQUEST_REVIEW = "pull_request_review"
    WORKFLOW_RUN = "workflow_run"
    DEPLOYMENT_STATUS = "deployment_status"


_REVIEW_STATES: dict[str, PrEventType] = {
    "approved": PrEventType.APPROVED,
    "changes_requested": PrEventType.CHANGES_REQUESTED,
    "commented": PrEventType.REVIEW_SUBMITTED,
}


def _require(value, field: str):
    if value is None or value == "":
        raise MalformedPayloadError("github", field)
    return value


async def process_github_event(db: AsyncSession, event_kind: str, payload: dict) -> None:
    """Route one webhook by its ``X-GitHub-Event`` value; unknown kinds are ignored."""
    try:
        kind = GithubEventKind(event_kind)
    except ValueError:
        logger.debug("github_event_ignored", event_kind=event_kind)
        return

    if kind is GithubEventKind.PULL_REQUEST:
        await _handle_pull_request(db, payload)
    elif kind is GithubEventKind.PULL_REQUEST_REVIEW:
        await _handle_review(db, payload)
    elif kind is GithubEventKind.WORKFLOW_RUN:
        await _handle_workflow_run(db, payload)
    elif kind is GithubEventKind.DEPLOYMENT_STATUS:
        await _handle_deployment_status(db, payload)
    else:
        assert_never(kind)


async def _resolve_tech_stream(db: AsyncSession, payload: dict) -> TechStream | None:
    install_id = (payload.get("installation") or {}).get("id")
    if install_id is None:
        logger.debug("github_event_unresolved", reason="no_installation")
        return None
    tech_stream = await get_tech_stream_by_install_id(db, install_id)
    if tech_stream is None:
        logger.debug("github_event_unresolved", reason="unknown_installation", install_id=str(install_id))
    return tech_stream


async def _resolve_repository(db: AsyncSession, payload: dict) -> Repository | None:
    full_name = (payload.get("repository") or {}).get("full_name") or ""
    org, _, name = full_name.partition("/")
    if not org or not name:
        logger.debug("github_event_unresolved", reason="no_repository")
        return None
    repo = await get_repository(db, org, name)
    if repo is None:
        logger.debug("github_event_unresolved", reason="unknown_repository", repository=full_name)
    return repo


async def _pr_event_exists(db: AsyncSession, repo: Repository, pr_number: int, event_type: PrEventType, at) -> bool:
    result = await db.execute(
        select(PrEvent.id).where(
            PrEvent.repo_id == repo.id,
            PrEvent.pr_number == pr_number,
            PrEvent.event_type == event_type,
            PrEvent.event_timestamp == at,
        )
    )
    return result.scalar_one_or_none() is not None


def _pr_fields(tech_stream: TechStream, payload: dict, pr: dict) -> dict:
    repository = payload.get("repository") or {}
    head = pr.get("head") or {}
    base = pr.get("base") or {}
    pattern = compile_ticket_pattern(tech_stream.ticket_regex)
    return {
        "github_org": (repository.get("owner") or {}).get("login") or repository.get("full_name", "").split("/")[0],
        "github_repo": repository.get("name") or "",
        "author_hash": hash_identity((pr.get("user") or {}).get("login")),
        "branch_name": head.get("ref"),
        "base_branch": base.get("ref"),
        "linked_ticket_id": extract_ticket_reference(pattern, head.get("ref"), pr.get("title"), pr.get("body")),
    }


async def _handle_pull_request(db: AsyncSession, payload: dict) -> None:
    action = payload.get("action")
    pr = payload.get("pull_request") or {}
    if action == "opened":
        event_type = PrEventType.OPENED
        raw_timestamp = pr.get("created_at")
    elif action == "closed" and pr.get("merged"):
        event_type = PrEventType.MERGED
        raw_timestamp = pr.get("merged_at") or pr.get("closed_at")
    elif action == "closed":
        event_type = PrEventType.CLOSED
        raw_timestamp = pr.get("closed_at")
    else:
        return

    tech_stream = await _resolve_tech_stream(db, payload)
    if tech_stream is None:
        return
    repo = await _resolve_repository(db, payload)
    if repo is None:
        return

    pr_number = _require(pr.get("number"), "pull_request.number")
    event_timestamp = parse_timestamp(_require(raw_timestamp or pr.get("updated_at"), "pull_request.updated_at"))
    if await _pr_event_exists(db, repo, pr_number, event_type, event_timestamp):
        logger.debug("github_pr_event_duplicate", repo=repo.full_name, pr_number=pr_number, event_type=event_type.value)
        return

    fields = _pr_fields(tech_stream, payload, pr)
    db.add(
        PrEvent(
            tech_stream_id=tech_stream.id,
            delivery_stream_id=await ticket_delivery_stream_id(db, fields["linked_ticket_id"]),
            repo_id=repo.id,
            pr_number=pr_number,
            event_type=event_type,
            lines_added=pr.get("additions"),
            lines_removed=pr.get("deletions"),
            files_changed=pr.get("changed_files"),
            merge_commit_sha=pr.get("merge_commit_sha") if event_type is PrEventType.MERGED else None,
            event_timestamp=event_timestamp,
            **fields,
        )
    )
    await db.flush()
    logger.info("github_pr_event_recorded", repo=repo.full_name, pr_number=pr_number, event_type=event_type.value)

    if event_type in (PrEventType.MERGED, PrEventType.CLOSED):
        await recompute_pr_cycle(db, repo.id, pr_number)


async def _handle_review(db: AsyncSession, payload: dict) -> None:
    review = payload.get("review") or {}
    pr = payload.get("pull_request") or {}
    event_type = _REVIEW_STATES.get((review.get("state") or "").lower())
    if event_type is None:
        return

    tech_stream = await _resolve_tech_stream(db, payload)
    if tech_stream is None:
        return
    repo = await _resolve_repository(db, payload)
    if repo is None:
        return

    pr_number = _require(pr.get("number"), "pull_request.number")
    event_timestamp = parse_timestamp(_require(review.get("submitted_at"), "review.submitted_at"))
    if await _pr_event_exists(db, repo, pr_number, event_type, event_timestamp):
        return

    fields = _pr_fields(tech_stream, payload, pr)
    db.add(
        PrEvent(
            tech_stream_id=tech_stream.id,
            delivery_stream_id=await ticket_delivery_stream_id(db, fields["linked_ticket_id"]),
            repo_id=repo.id,
            pr_number=pr_number,
            event_type=event_type,
            reviewer_hash=hash_identity((review.get("user") or {}).get("login")),
            review_state=review.get("state"),
            event_timestamp=event_timestamp,
            **fields,
        )
    )
    await db.flush()
    logger.info("github_review_recorded", repo=repo.full_name, pr_number=pr_number, event_type=event_type.value)


async def _cicd_event_exists(db: AsyncSession, pipeline_id: str, run_id: str, event_type: CicdEventType) -> bool:
    result = await db.execute(
        select(CicdEvent.id).where(
            CicdEvent.pipeline_id == pipeline_id,
            CicdEvent.pipeline_run_id == run_id,
            CicdEvent.event_type == event_type,
        )
    )
    return result.scalar_one_or_none() is not None


async def _handle_workflow_run(db: AsyncSession, payload: dict) -> None:
    if payload.get("action") != "completed":
        return
    tech_stream = await _resolve_tech_stream(db, payload)
    if tech_stream is None:
        return

    run = payload.get("workflow_run") or {}
    pipeline_id = str(_require(run.get("workflow_id"), "workflow_run.workflow_id"))
    run_id = str(_require(run.get("id"), "workflow_run.id"))
    if await _cicd_event_exists(db, pipeline_id, run_id, CicdEventType.BUILD_COMPLETED):
        return

    started_at = parse_timestamp(run.get("run_started_at"))
    finished_at = parse_timestamp(_require(run.get("updated_at") or run.get("created_at"), "workflow_run.updated_at"))
    repo = await _resolve_repository(db, payload)
    db.add(
        CicdEvent(
            tech_stream_id=tech_stream.id,
            repo_id=repo.id if repo else None,
            event_type=CicdEventType.BUILD_COMPLETED,
            pipeline_id=pipeline_id,
            pipeline_run_id=run_id,
            environment="ci",
            status=run.get("conclusion") or "unknown",
            commit_sha=run.get("head_sha"),
            duration_sec=(finished_at - started_at).total_seconds() if started_at else None,
            event_timestamp=finished_at,
        )
    )
    await db.flush()
    logger.info("github_build_recorded", pipeline_id=pipeline_id, run_id=run_id)


async def _handle_deployment_status(db: AsyncSession, payload: dict) -> None:
    deployment = payload.get("deployment") or {}
    deploy_status = payload.get("deployment_status") or {}
    state = deploy_status.get("state")
    if state not in ("success", "failure"):
        return

    tech_stream = await _resolve_tech_stream(db, payload)
    if tech_stream is None:
        return

    event_type = CicdEventType.DEPLOY_COMPLETED if state == "success" else CicdEventType.DEPLOY_FAILED
    pipeline_id = str(_require(deployment.get("id"), "deployment.id"))
    run_id = str(_require(deploy_status.get("id"), "deployment_status.id"))
    if await _cicd_event_exists(db, pipeline_id, run_id, event_type):
        return

    environment = deploy_status.get("environment") or deployment.get("environment") or "unknown"
    commit_sha = deployment.get("sha")
    event_timestamp = parse_timestamp(_require(deploy_status.get("created_at"), "deployment_status.created_at"))
    repo = await _resolve_repository(db, payload)
    db.add(
        CicdEvent(
            tech_stream_id=tech_stream.id,
            repo_id=repo.id if repo else None,
            event_type=event_type,
            pipeline_id=pipeline_id,
            pipeline_run_id=run_id,
            environment=environment,
            status=state,
            commit_sha=commit_sha,
            event_timestamp=event_timestamp,
        )
    )
    await db.flush()
    logger.info("github_deploy_recorded", pipeline_id=pipeline_id, environment=environment, state=state)

    if environment == PRODUCTION and state == "success" and repo is not None:
        # GitHub sends deployment.payload as an object or, for legacy clients, an opaque string
        extra = deployment.get("payload")
        await record_deployment(
            db,
            repo,
            environment=environment,
            status=DeploymentStatus.SUCCESS,
            commit_sha=_require(commit_sha, "deployment.sha"),
            deployed_at=event_timestamp,
            pipeline_id=pipeline_id,
            trigger_type=extra.get("trigger_type") if isinstance(extra, dict) else None,
        )
