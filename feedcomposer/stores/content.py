"""
Content store — executes composed feed statements.

The statement arrives fully composed (builder → visibility gate → paging
window) and already selects `(Post, cursor_key)`. This store only owns the
session and the translation of driver failures into FeedUnavailableError;
it adds no caching or retries.
"""
import logging
from typing import Any, Protocol

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedcomposer.errors import FeedNotFoundError, FeedUnavailableError
from feedcomposer.models import Post, Source

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    async def query(self, stmt: Select) -> list[tuple[Post, Any]]: ...


class SourceStore(Protocol):
    async def get(self, source_id: str) -> Source: ...


class SqlContentStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def query(self, stmt: Select) -> list[tuple[Post, Any]]:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [(row[0], row[1]) for row in result.all()]
        except SQLAlchemyError as exc:
            logger.error("Feed query failed: %s", exc)
            raise FeedUnavailableError("Content store unavailable") from exc


class SqlSourceStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, source_id: str) -> Source:
        try:
            async with self._sessions() as session:
                source = await session.scalar(
                    select(Source).where(Source.id == source_id)
                )
        except SQLAlchemyError as exc:
            raise FeedUnavailableError("Content store unavailable") from exc
        if source is None:
            raise FeedNotFoundError(f"Source {source_id} not found")
        return source
