import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from flowmetrics.cycles.models import WorkItemCycle
from flowmetrics.metrics.cycle_time import completed_cycles
from flowmetrics.metrics.schemas import FlowEfficiencyResult
from flowmetrics.metrics.stats import mean


def summarize_flow_efficiency(cycles: Iterable[WorkItemCycle]) -> FlowEfficiencyResult:
    """Mean flow efficiency, and mean time per stage over only the cycles that visited it."""
    cycles = list(cycles)
    stage_totals: dict[str, list[float]] = {}
    for cycle in cycles:
        for stage, duration in (cycle.stage_durations or {}).items():
            stage_totals.setdefault(stage, []).append(float(duration))

    return FlowEfficiencyResult(
        count=len(cycles),
        avg_flow_efficiency_pct=mean([c.flow_efficiency_pct for c in cycles]),
        avg_stage_durations={stage: sum(d) / len(d) for stage, d in stage_totals.items()},
    )


async def compute_flow_efficiency(
    db: AsyncSession,
    delivery_stream_id: uuid.UUID | None = None,
    window_days: int = 30,
    now: datetime | None = None,
) -> FlowEfficiencyResult:
    return summarize_flow_efficiency(await completed_cycles(db, delivery_stream_id, window_days, now))
