"""
curator/database.py
Async engine and session factory for the ranking tables.

SQLite (the default) gets a busy timeout and enforced foreign keys so
deleting a collection cascades to its items and ranks; any other backend
gets a pooled engine.
"""
import logging

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from curator.config.settings import settings
from curator.orm.base import Base
import curator.orm  # registers every model on Base.metadata

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_async_engine(url, echo=False, connect_args={"timeout": 30.0})
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """Request-scoped session; services own commit and rollback."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    logger.info(f"Creating ranking tables on {engine.url.get_backend_name()}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
    logger.info("Database engine disposed")
