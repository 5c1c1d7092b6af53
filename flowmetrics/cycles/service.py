import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.config import settings
from flowmetrics.cycles.derivation import derive_pr_cycle, derive_work_item_cycle
from flowmetrics.cycles.models import PrCycle, WorkItemCycle
from flowmetrics.events.models import PrEvent, WorkItemEvent
from flowmetrics.streams.models import TechStream
from flowmetrics.streams.service import load_status_map, project_key_of

logger = structlog.get_logger()


async def recompute_work_item_cycle(db: AsyncSession, ticket_id: str) -> WorkItemCycle | None:
    """Re-derive a ticket's cycle from its full history and overwrite the stored row.

    Flushes but does not commit; runs inside the caller's transaction.
    """
    result = await db.execute(
        select(WorkItemEvent).where(WorkItemEvent.ticket_id == ticket_id).order_by(WorkItemEvent.event_timestamp)
    )
    events = result.scalars().all()
    status_map = await load_status_map(db, project_key_of(ticket_id))

    data = derive_work_item_cycle(events, status_map.active_stages)
    if data is None:
        return None

    existing = await db.execute(select(WorkItemCycle).where(WorkItemCycle.ticket_id == ticket_id))
    cycle = existing.scalar_one_or_none()
    if cycle is None:
        cycle = WorkItemCycle(ticket_id=ticket_id)
        db.add(cycle)

    cycle.delivery_stream_id = data.delivery_stream_id
    cycle.ticket_type = data.ticket_type
    cycle.story_points = data.story_points
    cycle.sprint_id = data.sprint_id
    cycle.created_at_source = data.created_at_source
    cycle.first_in_progress = data.first_in_progress
    cycle.completed_at = data.completed_at
    cycle.lead_time_days = data.lead_time_days
    cycle.cycle_time_days = data.cycle_time_days
    cycle.active_time_days = data.active_time_days
    cycle.wait_time_days = data.wait_time_days
    cycle.flow_efficiency_pct = data.flow_efficiency_pct
    cycle.stage_durations = data.stage_durations
    await db.flush()

    logger.info(
        "work_item_cycle_recomputed",
        ticket_id=ticket_id,
        cycle_time_days=round(data.cycle_time_days, 3),
        flow_efficiency_pct=round(data.flow_efficiency_pct, 1),
    )
    return cycle


async def recompute_pr_cycle(db: AsyncSession, repo_id: uuid.UUID, pr_number: int) -> PrCycle | None:
    """Re-derive a PR's cycle from its full history and overwrite the stored row."""
    result = await db.execute(
        select(PrEvent)
        .where(PrEvent.repo_id == repo_id, PrEvent.pr_number == pr_number)
        .order_by(PrEvent.event_timestamp)
    )
    events = result.scalars().all()
    if not events:
        return None

    tech_stream_id = events[0].tech_stream_id
    tech_stream = await db.get(TechStream, tech_stream_id)
    min_reviewers = tech_stream.min_contributors if tech_stream else settings.DEFAULT_MIN_REVIEWERS

    data = derive_pr_cycle(events, min_reviewers)
    if data is None:
        return None

    existing = await db.execute(
        select(PrCycle).where(PrCycle.repo_id == repo_id, PrCycle.pr_number == pr_number)
    )
    cycle = existing.scalar_one_or_none()
    if cycle is None:
        cycle = PrCycle(repo_id=repo_id, pr_number=pr_number)
        db.add(cycle)

    cycle.tech_stream_id = tech_stream_id
    tagged = [e.delivery_stream_id for e in events if e.delivery_stream_id]
    if tagged:
        cycle.delivery_stream_id = tagged[0]
    cycle.linked_ticket_id = data.linked_ticket_id
    cycle.author_hash = data.author_hash
    cycle.merge_commit_sha = data.merge_commit_sha
    cycle.opened_at = data.opened_at
    cycle.first_review_at = data.first_review_at
    cycle.approved_at = data.approved_at
    cycle.merged_at = data.merged_at
    cycle.time_to_first_review_hrs = data.time_to_first_review_hrs
    cycle.time_to_merge_hrs = data.time_to_merge_hrs
    cycle.review_rounds = data.review_rounds
    cycle.reviewer_hashes = data.reviewer_hashes
    cycle.reviewer_count = len(data.reviewer_hashes)
    cycle.reviewer_shares = data.reviewer_shares
    cycle.concentration_suppressed = data.concentration_suppressed
    cycle.lines_changed = data.lines_changed
    cycle.files_changed = data.files_changed
    await db.flush()

    logger.info(
        "pr_cycle_recomputed",
        repo_id=str(repo_id),
        pr_number=pr_number,
        review_rounds=data.review_rounds,
        concentration_suppressed=data.concentration_suppressed,
    )
    return cycle


async def ticket_delivery_stream_id(db: AsyncSession, ticket_id: str | None) -> uuid.UUID | None:
    """Delivery stream of the earliest tagged event for ``ticket_id``, if any."""
    if not ticket_id:
        return None
    result = await db.execute(
        select(WorkItemEvent.delivery_stream_id)
        .where(WorkItemEvent.ticket_id == ticket_id, WorkItemEvent.delivery_stream_id.is_not(None))
        .order_by(WorkItemEvent.event_timestamp)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def enrich_pr_delivery_streams_for_ticket(db: AsyncSession, ticket_id: str) -> int:
    """Copy a ticket's delivery stream onto untagged PR events and PR cycles that reference it.

    Returns the number of PR events updated. Flushes but does not commit.
    """
    delivery_stream_id = await ticket_delivery_stream_id(db, ticket_id)
    if delivery_stream_id is None:
        return 0

    events = await db.execute(
        select(PrEvent).where(PrEvent.linked_ticket_id == ticket_id, PrEvent.delivery_stream_id.is_(None))
    )
    cycles = await db.execute(
        select(PrCycle).where(PrCycle.linked_ticket_id == ticket_id, PrCycle.delivery_stream_id.is_(None))
    )
    pr_events = events.scalars().all()
    for row in [*pr_events, *cycles.scalars().all()]:
        row.delivery_stream_id = delivery_stream_id
    await db.flush()
    return len(pr_events)


async def enrich_pr_delivery_streams(db: AsyncSession) -> int:
    """Tag every PR whose linked ticket has since been seen with a delivery stream.

    Covers PRs that arrived before their ticket's first Jira event. Each ticket
    commits on its own so one bad ticket does not undo the rest.
    """
    result = await db.execute(
        select(PrEvent.linked_ticket_id)
        .where(PrEvent.linked_ticket_id.is_not(None), PrEvent.delivery_stream_id.is_(None))
        .distinct()
    )
    ticket_ids = result.scalars().all()

    total = 0
    for ticket_id in ticket_ids:
        try:
            total += await enrich_pr_delivery_streams_for_ticket(db, ticket_id)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("pr_delivery_stream_enrichment_failed", ticket_id=ticket_id)

    if total:
        logger.info("pr_delivery_streams_enriched", tickets=len(ticket_ids), pr_events=total)
    return total
