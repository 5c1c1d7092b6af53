import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from flowmetrics.config import settings
from flowmetrics.models.base import Base
from flowmetrics.streams.models import DeliveryStream, TechStream, Repository, StatusMapping, Sprint, SprintSnapshot, PublicHoliday  # noqa: F401
from flowmetrics.platform.models import PlatformSetting  # noqa: F401
from flowmetrics.queue.models import EventQueueItem  # noqa: F401
from flowmetrics.events.models import WorkItemEvent, PrEvent, CicdEvent, DeploymentRecord, IncidentEvent, DefectEvent  # noqa: F401
from flowmetrics.cycles.models import WorkItemCycle, PrCycle  # noqa: F401
from flowmetrics.metrics.models import CrossStreamCorrelation  # noqa: F401
from flowmetrics.forecast.models import ForecastSnapshot  # noqa: F401
from flowmetrics.materialization.models import DailyStreamMetric  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations():
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
