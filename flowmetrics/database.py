"""Engine and session plumbing shared by the HTTP routers and the scheduler loops."""

import sqlalchemy.event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flowmetrics.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False)


@sqlalchemy.event.listens_for(engine.sync_engine, "connect")
def _configure_sqlite_connection(dbapi_conn, _connection_record):
    """WAL plus a busy timeout lets webhook ingress write while the drain loop holds a transaction."""
    if not settings.DATABASE_URL.startswith("sqlite"):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """Request-scoped session; each metrics or ingress request gets its own."""
    async with async_session_factory() as session:
        yield session
