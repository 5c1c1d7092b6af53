"""Periodic background jobs: queue drain, cross-stream analysis, sprint snapshots, daily rollups."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowmetrics.config import settings
from flowmetrics.cycles.service import enrich_pr_delivery_streams
from flowmetrics.forecast.service import materialize_all_forecasts
from flowmetrics.materialization.service import materialize_daily_metrics
from flowmetrics.metrics.cross_stream import materialize_cross_stream
from flowmetrics.platform.service import load_metrics_config
from flowmetrics.queue.service import drain
from flowmetrics.retention.service import enforce_retention
from flowmetrics.streams.service import snapshot_active_sprints

logger = structlog.get_logger()

Job = Callable[[AsyncSession], Awaitable[object]]


async def run_drain_cycle(db: AsyncSession) -> None:
    await drain(db)
    await enrich_pr_delivery_streams(db)


async def run_cross_stream_cycle(db: AsyncSession) -> None:
    await materialize_cross_stream(db)


async def run_sprint_snapshot_cycle(db: AsyncSession) -> None:
    await snapshot_active_sprints(db)


async def run_daily_jobs(db: AsyncSession, session_factory: async_sessionmaker | None = None) -> None:
    """Daily metrics, forecasts, then retention.

    Each step gets its own session and runs even if an earlier one failed, so
    a broken forecast neither holds up retention nor rolls back the metrics.
    """
    config = await load_metrics_config(db)
    steps: list[tuple[str, Job]] = [
        ("daily_metrics", lambda s: materialize_daily_metrics(s, config=config)),
        ("forecasts", lambda s: materialize_all_forecasts(s)),
        ("retention", lambda s: enforce_retention(s, config)),
    ]
    for name, step in steps:
        try:
            await run_job(step, session_factory)
        except Exception:
            logger.exception("daily_job_failed", job=name)


async def run_job(job: Job, session_factory: async_sessionmaker | None = None) -> None:
    """Run one job in its own session."""
    if session_factory is None:
        from flowmetrics.database import async_session_factory

        session_factory = async_session_factory

    async with session_factory() as db:
        await job(db)


async def job_loop(name: str, job: Job, interval_seconds: int) -> None:
    """Run ``job`` every ``interval_seconds`` indefinitely; failures are logged and retried next tick."""
    logger.info("scheduler_loop_started", job=name, interval=interval_seconds)
    while True:
        try:
            await run_job(job)
        except Exception:
            logger.exception("scheduler_loop_error", job=name)
        await asyncio.sleep(interval_seconds)


def start_scheduler() -> list[asyncio.Task]:
    loops = [
        ("queue_drain", run_drain_cycle, settings.QUEUE_DRAIN_INTERVAL_SECONDS),
        ("cross_stream", run_cross_stream_cycle, settings.CROSS_STREAM_INTERVAL_SECONDS),
        ("sprint_snapshots", run_sprint_snapshot_cycle, settings.SPRINT_SNAPSHOT_INTERVAL_SECONDS),
        ("daily_jobs", run_daily_jobs, settings.DAILY_JOBS_INTERVAL_SECONDS),
    ]
    return [asyncio.create_task(job_loop(name, job, interval)) for name, job, interval in loops]


async def stop_scheduler(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
