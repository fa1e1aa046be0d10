"""
Database engine and session factory.

SQLite in-memory (the default) needs a single shared connection, otherwise
every pooled connection would see its own empty database.
"""

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from testfachdienst.src.config import Settings
from testfachdienst.src.models.erezept import Base

logger = structlog.get_logger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for ``settings.database_url``."""
    url = make_url(settings.database_url)
    kwargs = {"echo": settings.database_echo}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **kwargs)
    logger.info(
        "database_engine_created",
        backend=url.get_backend_name(),
        database=url.database,
    )
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_schema_ready", tables=sorted(Base.metadata.tables))


async def ping(engine: AsyncEngine) -> bool:
    """Return True if a trivial query succeeds."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
