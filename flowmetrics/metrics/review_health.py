import uuid
from collections import Counter
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import PrCycle
from flowmetrics.events.enums import REVIEW_EVENT_TYPES, PrEventType
from flowmetrics.events.models import PrEvent
from flowmetrics.metrics.schemas import ReviewerConcentration, ReviewHealthResult
from flowmetrics.metrics.stats import percentile
from flowmetrics.platform.service import MetricsConfig
from flowmetrics.streams.models import TechStream
from flowmetrics.timeutils import utc_now

CONCERNING_SHARE_PCT = 50


def reviewer_concentration(reviewer_hashes: list[str]) -> list[ReviewerConcentration]:
    counts = Counter(reviewer_hashes)
    total = sum(counts.values())
    rows = []
    for reviewer, n in counts.most_common():
        share = n / total * 100
        rows.append(
            ReviewerConcentration(
                reviewer_hash=reviewer,
                review_count=n,
                percentage=share,
                is_concerning=share > CONCERNING_SHARE_PCT,
            )
        )
    return rows


async def compute_review_health(
    db: AsyncSession,
    tech_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    config: MetricsConfig | None = None,
    now: datetime | None = None,
) -> ReviewHealthResult:
    """Review turnaround for PRs merged in the window plus reviewer concentration.

    Concentration is withheld when the team has fewer distinct contributors
    (authors and reviewers) than the stream's ``min_contributors``.
    """
    config = config or MetricsConfig()
    window_start = (now or utc_now()) - timedelta(days=window_days)

    min_contributors = config.min_reviewers
    if tech_stream_id is not None:
        tech_stream = await db.get(TechStream, tech_stream_id)
        if tech_stream is not None and tech_stream.min_contributors is not None:
            min_contributors = tech_stream.min_contributors

    cycles_query = select(PrCycle.time_to_first_review_hrs).where(
        PrCycle.merged_at >= window_start,
        PrCycle.time_to_first_review_hrs.is_not(None),
    )
    events_query = select(PrEvent).where(PrEvent.event_timestamp >= window_start)
    if tech_stream_id is not None:
        cycles_query = cycles_query.where(PrCycle.tech_stream_id == tech_stream_id)
        events_query = events_query.where(PrEvent.tech_stream_id == tech_stream_id)

    review_times = sorted((await db.execute(cycles_query)).scalars().all())
    events = (await db.execute(events_query)).scalars().all()

    reviews = [e.reviewer_hash for e in events if PrEventType(e.event_type) in REVIEW_EVENT_TYPES and e.reviewer_hash]
    opened = [e for e in events if e.event_type == PrEventType.OPENED]
    contributors = set(reviews) | {e.author_hash for e in opened if e.author_hash}
    suppressed = len(contributors) < min_contributors
    linked = sum(1 for e in opened if e.linked_ticket_id)

    return ReviewHealthResult(
        pr_count=len(review_times),
        p50=percentile(review_times, 50),
        p85=percentile(review_times, 85),
        distinct_contributors=len(contributors),
        is_suppressed=suppressed,
        reviewer_concentration=[] if suppressed else reviewer_concentration(reviews),
        pr_to_ticket_linkage_rate=linked / len(opened) * 100 if opened else 0.0,
    )
