"""
Shared fixtures: a throwaway aiosqlite content store per test, seeded with
a handful of sources, plus helpers to insert rows.
"""
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from feedcomposer.config import Settings
from feedcomposer.database import create_engine, create_session_factory, init_db
from feedcomposer.engine.pipeline import create_pipeline
from feedcomposer.models import Post, Source, SourceType

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)
WATERCOOLER_ID = "watercooler"


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'feeds.db'}",
        random_function="random",
        watercooler_id=WATERCOOLER_ID,
        feed_default_page_size=10,
        feed_max_page_size=50,
    )


@pytest_asyncio.fixture
async def engine(test_settings):
    engine = create_engine(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return create_session_factory(engine)


@pytest.fixture
def pipeline(sessions, test_settings):
    return create_pipeline(sessions, test_settings)


@pytest.fixture
def add(sessions):
    """Insert ORM rows and commit."""
    async def _add(*rows):
        async with sessions() as session:
            session.add_all(rows)
            await session.commit()
    return _add


@pytest_asyncio.fixture
async def sources(add):
    rows = [
        Source(id="a", name="Source A"),
        Source(id="b", name="Source B"),
        Source(id="community", name="Community Picks"),
        Source(
            id="squad-public",
            name="Public Squad",
            type=SourceType.SQUAD.value,
            flags={"publicThreshold": True},
        ),
        Source(
            id="squad-small",
            name="Small Squad",
            type=SourceType.SQUAD.value,
            flags={},
        ),
        Source(
            id=WATERCOOLER_ID,
            name="Watercooler",
            type=SourceType.SQUAD.value,
            flags={"publicThreshold": True},
        ),
        Source(id="secret", name="Secret Squad", type=SourceType.SQUAD.value, private=True),
    ]
    await add(*rows)
    return {s.id: s for s in rows}


def make_post(post_id, source_id="a", minutes=0, score=0.0, **kwargs):
    """A post created `minutes` after BASE_TIME."""
    return Post(
        id=post_id,
        source_id=source_id,
        title=kwargs.pop("title", f"Post {post_id}"),
        created_at=BASE_TIME + timedelta(minutes=minutes),
        score=score,
        **kwargs,
    )


async def collect_all(pipeline, request_factory, max_pages=50):
    """Follow end cursors until the feed is exhausted; return node ids."""
    ids, after = [], None
    for _ in range(max_pages):
        connection = await pipeline.resolve(request_factory(after))
        ids.extend(edge.node.id for edge in connection.edges)
        if not connection.page_info.has_next_page:
            return ids
        after = connection.page_info.end_cursor
    raise AssertionError("feed did not terminate")
