"""
Async SQLAlchemy engine + session factory for the content store.

The store is wire-compatible with MySQL, so production uses the aiomysql
driver; tests point `database_url` at aiosqlite. The engine is created once
by the application lifespan and handed to the stores that need it.
"""
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from feedcomposer.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    kwargs = {"pool_pre_ping": True, "echo": False}
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables if they don't exist (idempotent)."""
    # Register every mapped class on Base.metadata before create_all
    import feedcomposer.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")
