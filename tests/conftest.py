from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import flowmetrics.cycles.models  # noqa: F401
import flowmetrics.events.models  # noqa: F401
import flowmetrics.forecast.models  # noqa: F401
import flowmetrics.materialization.models  # noqa: F401
import flowmetrics.metrics.models  # noqa: F401
import flowmetrics.platform.models  # noqa: F401
import flowmetrics.queue.models  # noqa: F401
from flowmetrics.database import get_db
from flowmetrics.events.enums import PipelineStage
from flowmetrics.main import create_app
from flowmetrics.models.base import Base
from flowmetrics.streams.models import DeliveryStream, Repository, StatusMapping, TechStream

# Wednesday; tests pin "now" so windows and weekdays are deterministic.
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)

# (status name, stage, is active work)
PAY_STATUSES = [
    ("Backlog", PipelineStage.BACKLOG, False),
    ("Analysis", PipelineStage.BA, True),
    ("In Progress", PipelineStage.DEV, True),
    ("In Review", PipelineStage.CODE_REVIEW, False),
    ("QA", PipelineStage.QA, True),
    ("UAT", PipelineStage.UAT, False),
    ("Done", PipelineStage.DONE, False),
]


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def delivery_stream(db: AsyncSession) -> DeliveryStream:
    stream = DeliveryStream(name="payments", display_name="Payments", is_active=True)
    db.add(stream)
    await db.commit()
    return stream


@pytest_asyncio.fixture
async def tech_stream(db: AsyncSession) -> TechStream:
    stream = TechStream(
        name="platform",
        display_name="Platform",
        github_org="acme",
        github_install_id="4242",
        is_active=True,
        min_contributors=2,
    )
    db.add(stream)
    await db.commit()
    return stream


@pytest_asyncio.fixture
async def repository(db: AsyncSession, tech_stream: TechStream) -> Repository:
    repo = Repository(
        tech_stream_id=tech_stream.id,
        github_org="acme",
        github_repo_name="checkout",
        full_name="acme/checkout",
        is_deployable=True,
        deploy_target="checkout-service",
        is_active=True,
    )
    db.add(repo)
    await db.commit()
    return repo


@pytest_asyncio.fixture
async def status_mappings(db: AsyncSession) -> list[StatusMapping]:
    mappings = [
        StatusMapping(
            jira_project_key="PAY",
            jira_status_name=name,
            pipeline_stage=stage,
            is_active_work=active,
            display_order=i,
        )
        for i, (name, stage, active) in enumerate(PAY_STATUSES)
    ]
    db.add_all(mappings)
    await db.commit()
    return mappings
