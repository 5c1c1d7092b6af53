"""Pure lifecycle derivation over the ordered event history of one ticket or PR.

Nothing here touches the database; the services in ``cycles.service`` load
the history and persist the result.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from flowmetrics.events.enums import (
    REVIEW_EVENT_TYPES,
    PipelineStage,
    PrEventType,
    WorkItemEventType,
)
from flowmetrics.events.models import PrEvent, WorkItemEvent
from flowmetrics.timeutils import ensure_utc

SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600


@dataclass
class WorkItemCycleData:
    ticket_id: str
    created_at_source: datetime
    first_in_progress: datetime | None
    completed_at: datetime
    lead_time_days: float
    cycle_time_days: float
    active_time_days: float
    wait_time_days: float
    flow_efficiency_pct: float
    stage_durations: dict[str, float] = field(default_factory=dict)
    delivery_stream_id: object | None = None
    ticket_type: str | None = None
    story_points: float | None = None
    sprint_id: str | None = None


@dataclass
class PrCycleData:
    pr_number: int
    opened_at: datetime
    first_review_at: datetime | None
    approved_at: datetime | None
    merged_at: datetime | None
    time_to_first_review_hrs: float | None
    time_to_merge_hrs: float | None
    review_rounds: int
    reviewer_hashes: list[str]
    reviewer_shares: dict[str, float] | None
    concentration_suppressed: bool
    linked_ticket_id: str | None = None
    author_hash: str | None = None
    merge_commit_sha: str | None = None
    lines_changed: int | None = None
    files_changed: int | None = None


def _days(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


def _hours(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_HOUR


def _ordered(events: Iterable) -> list:
    return sorted(events, key=lambda e: ensure_utc(e.event_timestamp))


def _latest_value(events: Sequence, attr: str):
    for event in reversed(events):
        value = getattr(event, attr, None)
        if value is not None:
            return value
    return None


def derive_work_item_cycle(
    events: Iterable[WorkItemEvent],
    active_stages: Iterable[PipelineStage],
) -> WorkItemCycleData | None:
    """Derive a ticket's cycle; None until the ticket has a completion event.

    The cycle starts at the first transition into an active-work stage. Each
    stage interval up to completion counts as active or wait time depending on
    whether its stage is in ``active_stages``.
    """
    ordered = _ordered(events)
    completed = next((e for e in ordered if e.event_type == WorkItemEventType.COMPLETED), None)
    if completed is None:
        return None

    active = frozenset(PipelineStage(s) for s in active_stages)
    completed_at = ensure_utc(completed.event_timestamp)
    created = next((e for e in ordered if e.event_type == WorkItemEventType.CREATED), None)
    transitions = [
        e
        for e in ordered
        if e.event_type == WorkItemEventType.TRANSITIONED
        and e.to_stage is not None
        and ensure_utc(e.event_timestamp) <= completed_at
    ]

    start_index = next((i for i, t in enumerate(transitions) if PipelineStage(t.to_stage) in active), None)
    stage_durations: dict[str, float] = {}
    active_days = 0.0
    wait_days = 0.0
    first_in_progress = None

    if start_index is not None:
        walked = transitions[start_index:]
        first_in_progress = ensure_utc(walked[0].event_timestamp)
        for i, transition in enumerate(walked):
            next_at = walked[i + 1].event_timestamp if i + 1 < len(walked) else completed_at
            duration = _days(transition.event_timestamp, next_at)
            stage = PipelineStage(transition.to_stage)
            stage_durations[stage.value] = stage_durations.get(stage.value, 0.0) + duration
            if stage in active:
                active_days += duration
            else:
                wait_days += duration

    if created is not None:
        created_at_source = ensure_utc(created.event_timestamp)
    elif transitions:
        created_at_source = ensure_utc(transitions[0].event_timestamp)
    else:
        created_at_source = completed_at

    cycle_days = active_days + wait_days
    return WorkItemCycleData(
        ticket_id=completed.ticket_id,
        created_at_source=created_at_source,
        first_in_progress=first_in_progress,
        completed_at=completed_at,
        lead_time_days=_days(created_at_source, completed_at),
        cycle_time_days=cycle_days,
        active_time_days=active_days,
        wait_time_days=wait_days,
        flow_efficiency_pct=(active_days / cycle_days * 100) if cycle_days > 0 else 0.0,
        stage_durations=stage_durations,
        delivery_stream_id=_latest_value(ordered, "delivery_stream_id"),
        ticket_type=_latest_value(ordered, "ticket_type"),
        story_points=_latest_value(ordered, "story_points"),
        sprint_id=_latest_value(ordered, "sprint_id"),
    )


def reviewer_shares(reviewer_hashes: Iterable[str]) -> dict[str, float]:
    """Percentage of all reviews each reviewer performed."""
    counts = Counter(reviewer_hashes)
    total = sum(counts.values())
    if total == 0:
        return {}
    return {reviewer: count / total * 100 for reviewer, count in counts.items()}


def derive_pr_cycle(events: Iterable[PrEvent], min_reviewers: int) -> PrCycleData | None:
    """Derive a PR's review/merge timeline; None until an ``opened`` event exists."""
    ordered = _ordered(events)
    opened = next((e for e in ordered if e.event_type == PrEventType.OPENED), None)
    if opened is None:
        return None

    merged = next((e for e in ordered if e.event_type == PrEventType.MERGED), None)
    closed = next((e for e in ordered if e.event_type == PrEventType.CLOSED), None)
    approved = next((e for e in ordered if e.event_type == PrEventType.APPROVED), None)
    reviews = [e for e in ordered if PrEventType(e.event_type) in REVIEW_EVENT_TYPES]
    first_review = reviews[0] if reviews else None

    opened_at = ensure_utc(opened.event_timestamp)
    merged_at = ensure_utc(merged.event_timestamp) if merged else None

    review_by = [e.reviewer_hash for e in reviews if e.reviewer_hash]
    distinct_reviewers = list(dict.fromkeys(review_by))
    suppressed = len(distinct_reviewers) < min_reviewers

    reference = merged or closed or opened
    lines_changed = None
    if reference.lines_added is not None and reference.lines_removed is not None:
        lines_changed = reference.lines_added + reference.lines_removed

    return PrCycleData(
        pr_number=opened.pr_number,
        opened_at=opened_at,
        first_review_at=ensure_utc(first_review.event_timestamp) if first_review else None,
        approved_at=ensure_utc(approved.event_timestamp) if approved else None,
        merged_at=merged_at,
        time_to_first_review_hrs=_hours(opened_at, first_review.event_timestamp) if first_review else None,
        time_to_merge_hrs=_hours(opened_at, merged_at) if merged_at else None,
        review_rounds=sum(1 for e in ordered if e.event_type == PrEventType.CHANGES_REQUESTED),
        reviewer_hashes=distinct_reviewers,
        reviewer_shares=None if suppressed else reviewer_shares(review_by),
        concentration_suppressed=suppressed,
        linked_ticket_id=_latest_value(ordered, "linked_ticket_id"),
        author_hash=opened.author_hash,
        merge_commit_sha=merged.merge_commit_sha if merged else None,
        lines_changed=lines_changed,
        files_changed=reference.files_changed,
    )
