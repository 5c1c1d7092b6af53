import uuid
from dataclasses import dataclass, field
from datetime import date

import structlog
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.events.enums import PipelineStage, WorkItemEventType
from flowmetrics.events.models import WorkItemEvent
from flowmetrics.streams.models import (
    DeliveryStream,
    PublicHoliday,
    Repository,
    Sprint,
    SprintSnapshot,
    StatusMapping,
    TechStream,
)
from flowmetrics.timeutils import utc_now

logger = structlog.get_logger()


@dataclass(frozen=True)
class StatusMap:
    """Jira status name -> pipeline stage for one project, plus its active-work stages."""

    project_key: str
    stages: dict[str, PipelineStage] = field(default_factory=dict)
    active_stages: frozenset[PipelineStage] = frozenset()

    def stage_for(self, status_name: str | None) -> PipelineStage | None:
        if not status_name:
            return None
        return self.stages.get(status_name)


def project_key_of(ticket_id: str) -> str:
    return ticket_id.split("-")[0]


async def load_status_map(db: AsyncSession, project_key: str) -> StatusMap:
    result = await db.execute(select(StatusMapping).where(StatusMapping.jira_project_key == project_key))
    mappings = result.scalars().all()
    return StatusMap(
        project_key=project_key,
        stages={m.jira_status_name: m.pipeline_stage for m in mappings},
        active_stages=frozenset(m.pipeline_stage for m in mappings if m.is_active_work),
    )


async def get_tech_stream_by_install_id(db: AsyncSession, install_id: str | int) -> TechStream | None:
    result = await db.execute(
        select(TechStream).where(TechStream.github_install_id == str(install_id), TechStream.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_tech_stream_by_name(db: AsyncSession, name: str | None) -> TechStream | None:
    if not name:
        return None
    result = await db.execute(select(TechStream).where(TechStream.name == name))
    return result.scalar_one_or_none()


async def get_delivery_stream_by_name(db: AsyncSession, name: str | None) -> DeliveryStream | None:
    if not name:
        return None
    result = await db.execute(select(DeliveryStream).where(DeliveryStream.name == name))
    return result.scalar_one_or_none()


async def get_repository(db: AsyncSession, github_org: str, repo_name: str) -> Repository | None:
    result = await db.execute(
        select(Repository).where(Repository.github_org == github_org, Repository.github_repo_name == repo_name)
    )
    return result.scalar_one_or_none()


async def get_repository_by_full_name(db: AsyncSession, full_name: str) -> Repository | None:
    result = await db.execute(select(Repository).where(Repository.full_name == full_name))
    return result.scalar_one_or_none()


async def get_repository_by_deploy_target(db: AsyncSession, deploy_target: str) -> Repository | None:
    result = await db.execute(
        select(Repository).where(Repository.deploy_target == deploy_target, Repository.is_active.is_(True)).limit(1)
    )
    return result.scalar_one_or_none()


async def list_active_delivery_streams(db: AsyncSession) -> list[DeliveryStream]:
    result = await db.execute(
        select(DeliveryStream).where(DeliveryStream.is_active.is_(True)).order_by(DeliveryStream.name)
    )
    return list(result.scalars().all())


async def list_active_tech_streams(db: AsyncSession) -> list[TechStream]:
    result = await db.execute(select(TechStream).where(TechStream.is_active.is_(True)).order_by(TechStream.name))
    return list(result.scalars().all())


async def load_holidays(db: AsyncSession) -> set[date]:
    result = await db.execute(select(PublicHoliday.date))
    return set(result.scalars().all())


async def get_active_sprint(db: AsyncSession, delivery_stream_id: uuid.UUID) -> Sprint | None:
    result = await db.execute(
        select(Sprint)
        .where(Sprint.delivery_stream_id == delivery_stream_id, Sprint.state == "active")
        .order_by(Sprint.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_snapshot(db: AsyncSession, sprint_id: uuid.UUID) -> SprintSnapshot | None:
    result = await db.execute(
        select(SprintSnapshot)
        .where(SprintSnapshot.sprint_id == sprint_id)
        .order_by(SprintSnapshot.snapshot_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def snapshot_active_sprints(db: AsyncSession, today: date | None = None) -> int:
    """Record committed/completed/remaining ticket counts for every active sprint.

    Committed tickets are those whose events reference the sprint; completed are
    the subset with a completion event. One row per (sprint, day), overwritten on
    re-run. Returns the number of sprints snapshotted.
    """
    today = today or utc_now().date()
    result = await db.execute(select(Sprint).where(Sprint.state == "active"))
    sprints = result.scalars().all()

    for sprint in sprints:
        committed_rows = await db.execute(
            select(distinct(WorkItemEvent.ticket_id)).where(WorkItemEvent.sprint_id == sprint.jira_sprint_id)
        )
        committed = set(committed_rows.scalars().all())

        completed: set[str] = set()
        if committed:
            completed_rows = await db.execute(
                select(distinct(WorkItemEvent.ticket_id)).where(
                    WorkItemEvent.ticket_id.in_(list(committed)),
                    WorkItemEvent.event_type == WorkItemEventType.COMPLETED,
                )
            )
            completed = set(completed_rows.scalars().all())

        existing = await db.execute(
            select(SprintSnapshot).where(
                SprintSnapshot.sprint_id == sprint.id, SprintSnapshot.snapshot_date == today
            )
        )
        snapshot = existing.scalar_one_or_none()
        if snapshot is None:
            snapshot = SprintSnapshot(sprint_id=sprint.id, snapshot_date=today, computed_at=utc_now())
            db.add(snapshot)
        snapshot.delivery_stream_id = sprint.delivery_stream_id
        snapshot.committed_count = len(committed)
        snapshot.completed_count = len(completed)
        snapshot.remaining_count = len(committed) - len(completed)
        snapshot.computed_at = utc_now()

    await db.commit()
    logger.info("sprint_snapshots_recorded", sprints=len(sprints), snapshot_date=today.isoformat())
    return len(sprints)
