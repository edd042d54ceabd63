"""
Feed resolution pipeline.

  Step 1 │ Page        client `first` / `after` → OffsetPage | KeysetPage
  Step 2 │ Filters     FilterResolver for configured feeds, client filters
         │             for anonymous / random feeds, nothing otherwise
  Step 3 │ Predicate   the feed kind's builder
  Step 4 │ Visibility  apply_visibility_gate with the kind's policy
  Step 5 │ Window      limit + 1 rows, seek/offset predicate, ordering
  Step 6 │ Execute     ContentStore.query → Connection of cursor-tagged edges
  Step 7 │ Warn        thin first pages are logged, never raised

Nothing here is shared between requests except the injected stores and the
page generators, which hold configuration only.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from opentelemetry import trace
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from feedcomposer.config import Settings
from feedcomposer.engine.cursors import encode_cursor
from feedcomposer.engine.filters import FilterResolver, FilterSet
from feedcomposer.engine.kinds import (
    AnonymousFeed,
    BookmarksFeed,
    ConfiguredFeed,
    FeedKind,
    FeedRequest,
    FixedIdsFeed,
    RandomFeed,
    Ranking,
    SourceFeed,
    TagFeed,
)
from feedcomposer.engine.pagination import (
    KeysetPage,
    KeysetPageGenerator,
    OffsetPageGenerator,
    Page,
    PageGenerator,
)
from feedcomposer.engine.predicates import (
    anonymous_feed_builder,
    bookmarks_feed_builder,
    configured_feed_builder,
    fixed_ids_feed_builder,
    fixed_ids_order_key,
    random_feed_builder,
    source_feed_builder,
    tag_feed_builder,
)
from feedcomposer.engine.visibility import VisibilityPolicy, apply_visibility_gate
from feedcomposer.errors import FeedForbiddenError, FeedValidationError
from feedcomposer.models import Bookmark, Post
from feedcomposer.stores.content import ContentStore, SqlContentStore
from feedcomposer.stores.feed_config import (
    SqlAdvancedSettingsStore,
    SqlMembershipStore,
    SqlSourceBlockStore,
    SqlTagRuleStore,
)
from feedcomposer.telemetry import (
    FEED_EDGES_TOTAL,
    FEED_LATENCY,
    FEED_PARTIAL_FIRST_PAGE_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# Which moderation checks each feed kind keeps or relaxes
VISIBILITY_POLICIES: dict[type, VisibilityPolicy] = {
    AnonymousFeed: VisibilityPolicy(),
    ConfiguredFeed: VisibilityPolicy(),
    BookmarksFeed: VisibilityPolicy(
        remove_hidden_posts=False,
        remove_banned_posts=False,
        remove_non_public_threshold_squads=False,
    ),
    SourceFeed: VisibilityPolicy(
        remove_hidden_posts=False,
        remove_non_public_threshold_squads=False,
    ),
    TagFeed: VisibilityPolicy(),
    FixedIdsFeed: VisibilityPolicy(
        allow_private_posts=False,
        remove_non_public_threshold_squads=False,
    ),
    RandomFeed: VisibilityPolicy(
        allow_private_posts=False,
        allow_squad_posts=False,
    ),
}

# Kinds whose thin first pages point at upstream data problems
WARN_ON_PARTIAL_FIRST_PAGE = (AnonymousFeed, ConfiguredFeed)

KIND_NAMES: dict[type, str] = {
    AnonymousFeed: "anonymous",
    ConfiguredFeed: "configured",
    BookmarksFeed: "bookmarks",
    SourceFeed: "source",
    TagFeed: "tag",
    FixedIdsFeed: "fixed_ids",
    RandomFeed: "random",
}


@dataclass(frozen=True)
class Edge:
    node: Post
    cursor: str


@dataclass(frozen=True)
class PageInfo:
    has_next_page: bool
    has_previous_page: bool
    start_cursor: Optional[str] = None
    end_cursor: Optional[str] = None


@dataclass(frozen=True)
class Connection:
    edges: tuple[Edge, ...]
    page_info: PageInfo


class FeedPipeline:
    def __init__(
        self,
        content_store: ContentStore,
        filter_resolver: FilterResolver,
        settings: Settings,
    ) -> None:
        self._content = content_store
        self._filters = filter_resolver
        self.settings = settings
        self.keyset_pages = KeysetPageGenerator(
            settings.feed_default_page_size, settings.feed_max_page_size
        )
        self.offset_pages = OffsetPageGenerator(
            settings.offset_default_page_size, settings.offset_max_page_size
        )
        self.random_pages = OffsetPageGenerator(
            settings.random_default_page_size, settings.feed_max_page_size
        )

    # ── Step 1 ────────────────────────────────────────────────────────────
    def page_generator(self, feed: FeedKind) -> PageGenerator:
        if isinstance(feed, FixedIdsFeed):
            return self.offset_pages
        if isinstance(feed, RandomFeed):
            return self.random_pages
        return self.keyset_pages

    # ── Step 2 ────────────────────────────────────────────────────────────
    async def resolve_filters(self, request: FeedRequest) -> Optional[FilterSet]:
        match request.feed:
            case ConfiguredFeed(feed_id=feed_id):
                return await self._filters.resolve(feed_id, request.requester.user_id)
            case AnonymousFeed(filters=filters) | RandomFeed(filters=filters):
                return filters
            case _:
                return None

    # ── Step 3 ────────────────────────────────────────────────────────────
    def build_predicate(
        self, request: FeedRequest, filters: Optional[FilterSet], stmt: Select
    ) -> Select:
        requester = request.requester
        match request.feed:
            case AnonymousFeed():
                return anonymous_feed_builder(requester, filters, stmt)
            case ConfiguredFeed(unread_only=unread_only):
                return configured_feed_builder(requester, filters, unread_only, stmt)
            case BookmarksFeed(unread_only=unread_only, list_id=list_id, query=query):
                if not requester.user_id:
                    raise FeedForbiddenError("Bookmarks require a signed-in user")
                return bookmarks_feed_builder(requester, unread_only, list_id, query, stmt)
            case SourceFeed(source_id=source_id):
                return source_feed_builder(
                    requester,
                    source_id,
                    stmt,
                    community_source=self.settings.community_picks_source,
                )
            case TagFeed(tag=tag):
                return tag_feed_builder(requester, tag, stmt)
            case FixedIdsFeed(ids=ids):
                return fixed_ids_feed_builder(requester, ids, stmt)
            case RandomFeed():
                return random_feed_builder(requester, filters, stmt)
            case _:
                raise TypeError(f"Unknown feed kind: {type(request.feed).__name__}")

    def order_key(self, request: FeedRequest) -> ColumnElement:
        match request.feed:
            case BookmarksFeed():
                return Bookmark.created_at
            case FixedIdsFeed(ids=ids):
                return fixed_ids_order_key(ids)
            case RandomFeed():
                return getattr(func, self.settings.random_function)()
            case _:
                if request.ranking == Ranking.TIME:
                    return Post.created_at
                return Post.score

    def check_cursor_ordering(self, request: FeedRequest, page: Page) -> None:
        """A timestamp cursor only continues a time-ordered feed, a score cursor a ranked one."""
        if not isinstance(page, KeysetPage) or page.after is None:
            return
        time_ordered = isinstance(request.feed, BookmarksFeed) or request.ranking == Ranking.TIME
        if time_ordered != isinstance(page.after.key, datetime):
            raise FeedValidationError("Cursor does not match the feed ordering")

    # ── Step 4 inputs ─────────────────────────────────────────────────────
    def post_types(self, request: FeedRequest, filters: Optional[FilterSet]) -> list[str]:
        types: Sequence[str] = request.supported_types or self.settings.default_post_types
        excluded = set(filters.exclude_content_types) if filters else set()
        return [t for t in types if t not in excluded]

    def source_types(self, filters: Optional[FilterSet]) -> list[str]:
        # Only an explicit exclusion turns the allow-list on
        if filters is None or not filters.exclude_source_types:
            return []
        return [
            t for t in self.settings.feed_source_types
            if t not in filters.exclude_source_types
        ]

    def compose(
        self, request: FeedRequest, filters: Optional[FilterSet], page: Page
    ) -> Select:
        """Builder → visibility gate → paging window, as one statement."""
        stmt = self.build_predicate(request, filters, select(Post))
        stmt = apply_visibility_gate(
            request.requester,
            stmt,
            self.post_types(request, filters),
            VISIBILITY_POLICIES[type(request.feed)],
            self.source_types(filters),
        )
        generator = self.page_generator(request.feed)
        return generator.apply_paging(page, stmt, self.order_key(request))

    # ── Steps 1-7 ─────────────────────────────────────────────────────────
    async def resolve(self, request: FeedRequest) -> Connection:
        kind = KIND_NAMES[type(request.feed)]
        start_time = time.time()

        with tracer.start_as_current_span("feed.resolve") as span:
            span.set_attribute("feed.kind", kind)
            if request.requester.user_id:
                span.set_attribute("user.id", request.requester.user_id)

            generator = self.page_generator(request.feed)
            after = None if isinstance(request.feed, RandomFeed) else request.after
            page = generator.connection_args_to_page(request.first, after)
            self.check_cursor_ordering(request, page)

            filters = await self.resolve_filters(request)
            stmt = self.compose(request, filters, page)

            with tracer.start_as_current_span("feed.query"):
                rows = await self._content.query(stmt)

            connection = self.to_connection(request, generator, page, rows)
            span.set_attribute("feed.edges", len(connection.edges))

        FEED_LATENCY.labels(kind=kind).observe(time.time() - start_time)
        FEED_EDGES_TOTAL.labels(kind=kind).inc(len(connection.edges))

        # Recent bans or deletions can leave a first page short
        if (
            isinstance(request.feed, WARN_ON_PARTIAL_FIRST_PAGE)
            and not request.after
            and len(connection.edges) < page.limit * self.settings.partial_first_page_ratio
        ):
            FEED_PARTIAL_FIRST_PAGE_TOTAL.labels(kind=kind).inc()
            logger.warning(
                "feed's first page is missing posts (kind=%s user=%s requested=%d posts=%d)",
                kind,
                request.requester.user_id,
                page.limit,
                len(connection.edges),
            )
        return connection

    def to_connection(
        self,
        request: FeedRequest,
        generator: PageGenerator,
        page: Page,
        rows: list[tuple[Post, Any]],
    ) -> Connection:
        edges = tuple(
            Edge(
                node=post,
                cursor=encode_cursor(generator.node_to_cursor(page, post, key, index)),
            )
            for index, (post, key) in enumerate(rows[: page.limit])
        )
        # A random sample is a single draw; there is nothing after it
        has_next = (
            False
            if isinstance(request.feed, RandomFeed)
            else generator.has_next_page(page, len(rows))
        )
        return Connection(
            edges=edges,
            page_info=PageInfo(
                has_next_page=has_next,
                has_previous_page=generator.has_previous_page(page, len(rows)),
                start_cursor=edges[0].cursor if edges else None,
                end_cursor=edges[-1].cursor if edges else None,
            ),
        )


def create_pipeline(
    sessions: async_sessionmaker[AsyncSession], settings: Settings
) -> FeedPipeline:
    """Wire the SQL-backed stores into a pipeline."""
    resolver = FilterResolver(
        SqlTagRuleStore(sessions),
        SqlSourceBlockStore(sessions),
        SqlMembershipStore(sessions),
        SqlAdvancedSettingsStore(sessions),
        watercooler_id=settings.watercooler_id,
    )
    return FeedPipeline(SqlContentStore(sessions), resolver, settings)
