"""
Database engine, session factory and lifecycle helpers.

Templates and drafts live in two tables whose structured values are JSON
columns, so the same models run on PostgreSQL (asyncpg) in production and on
SQLite (aiosqlite) in tests.  Engine options are chosen from the URL.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import Any, AsyncGenerator, Dict
import logging

from app.config import settings

logger = logging.getLogger(__name__)


def engine_options(url: str) -> Dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` given a database URL."""
    if url.startswith("sqlite"):
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    # Connections are not shared across event loops (uvicorn reload, tests)
    return {"echo": False, "pool_pre_ping": True, "poolclass": NullPool}


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for ORM models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session; committed on success, rolled back on error.

    Services that hold a draft lock commit themselves before releasing it,
    so the final commit here is usually a no-op.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Database session error: %s", e)
            raise


async def ping_db(session: AsyncSession) -> bool:
    """Run a trivial query.  Returns False instead of raising."""
    try:
        await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database ping failed: %s", e)
        return False


async def init_db() -> None:
    """Create the templates and drafts tables when missing."""
    async with engine.begin() as conn:
        # Registers the models on Base.metadata
        from app.models import database_models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
