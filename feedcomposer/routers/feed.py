"""
Feed retrieval endpoints.

  GET /feed/anonymous          popular / recent posts, optional client filters
  GET /feed/my                 the requester's configured feed (or another
                               of their feeds, Plus only)
  GET /feed/bookmarks          the requester's bookmarks
  GET /feed/sources/{id}       one source
  GET /feed/tags/{tag}         one tag
  GET /feed/ids?ids=…          a fixed, externally ordered list
  GET /feed/random             a small random sample

The requester is resolved by the gateway and arrives in `X-User-Id` /
`X-User-Premium`. Engine errors map onto HTTP statuses here and nowhere else.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from opentelemetry import trace

from feedcomposer.engine.filters import FilterSet
from feedcomposer.engine.kinds import (
    AnonymousFeed,
    BookmarksFeed,
    ConfiguredFeed,
    FeedKind,
    FeedRequest,
    FixedIdsFeed,
    RandomFeed,
    Ranking,
    Requester,
    SourceFeed,
    TagFeed,
)
from feedcomposer.engine.pipeline import FeedPipeline
from feedcomposer.errors import (
    FeedError,
    FeedForbiddenError,
    FeedNotFoundError,
    FeedUnavailableError,
    FeedValidationError,
)
from feedcomposer.schemas import FeedConnection
from feedcomposer.stores.content import SourceStore
from feedcomposer.stores.feed_config import MembershipStore

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)

_ERROR_STATUS = {
    FeedValidationError: status.HTTP_400_BAD_REQUEST,
    FeedForbiddenError: status.HTTP_403_FORBIDDEN,
    FeedNotFoundError: status.HTTP_404_NOT_FOUND,
    FeedUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ─────────────────────── Dependencies ─────────────────────────────────────

def get_pipeline(request: Request) -> FeedPipeline:
    return request.app.state.pipeline


def get_source_store(request: Request) -> SourceStore:
    return request.app.state.sources


def get_membership_store(request: Request) -> MembershipStore:
    return request.app.state.memberships


def get_requester(
    x_user_id: Optional[str] = Header(None),
    x_user_premium: bool = Header(False),
) -> Requester:
    return Requester(user_id=x_user_id or None, premium=x_user_premium)


class PageArgs:
    """Connection arguments shared by every feed endpoint."""

    def __init__(
        self,
        first: Optional[int] = Query(None, description="Page size"),
        after: Optional[str] = Query(None, description="Cursor of the last edge seen"),
        ranking: Ranking = Query(Ranking.POPULARITY),
        supported_types: Optional[list[str]] = Query(None),
    ) -> None:
        self.first = first
        self.after = after
        self.ranking = ranking
        self.supported_types = tuple(supported_types) if supported_types else None


def _status_for(exc: FeedError) -> int:
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _resolve(
    pipeline: FeedPipeline, feed: FeedKind, requester: Requester, args: PageArgs
) -> FeedConnection:
    request = FeedRequest(
        feed=feed,
        requester=requester,
        supported_types=args.supported_types,
        first=args.first,
        after=args.after,
        ranking=args.ranking,
    )
    try:
        connection = await pipeline.resolve(request)
    except FeedError as exc:
        code = _status_for(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Feed resolution failed (feed=%s): %s", type(feed).__name__, exc)
        raise HTTPException(status_code=code, detail=str(exc)) from exc
    return FeedConnection.from_connection(connection)


async def ensure_source_permissions(
    sources: SourceStore,
    memberships: MembershipStore,
    source_id: str,
    requester: Requester,
) -> None:
    """Private sources are readable by their members only."""
    source = await sources.get(source_id)
    if not source.private:
        return
    if requester.user_id:
        member_of = {m.source_id for m in await memberships.get(requester.user_id)}
        if source.id in member_of:
            return
    raise FeedForbiddenError("Access denied!")


# ─────────────────────── Endpoints ────────────────────────────────────────

@router.get("/anonymous", response_model=FeedConnection)
async def anonymous_feed(
    include_sources: Optional[list[str]] = Query(None),
    exclude_sources: Optional[list[str]] = Query(None),
    include_tags: Optional[list[str]] = Query(None),
    blocked_tags: Optional[list[str]] = Query(None),
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    filters = FilterSet(
        include_sources=tuple(include_sources or ()),
        exclude_sources=tuple(exclude_sources or ()),
        include_tags=tuple(include_tags or ()),
        blocked_tags=tuple(blocked_tags or ()),
    )
    return await _resolve(pipeline, AnonymousFeed(filters=filters), requester, args)


@router.get("/my", response_model=FeedConnection)
async def configured_feed(
    feed_id: Optional[str] = Query(None, description="Defaults to the user's main feed"),
    unread_only: bool = Query(False),
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    if not requester.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied!")
    # Custom feeds beyond the main one are a Plus feature
    feed_id = feed_id or requester.user_id
    if feed_id != requester.user_id and not requester.premium:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied!")

    with tracer.start_as_current_span("configured_feed") as span:
        span.set_attribute("feed.id", feed_id)
        return await _resolve(
            pipeline,
            ConfiguredFeed(feed_id=feed_id, unread_only=unread_only),
            requester,
            args,
        )


@router.get("/bookmarks", response_model=FeedConnection)
async def bookmarks_feed(
    unread_only: bool = Query(False),
    list_id: Optional[str] = Query(None),
    query: Optional[str] = Query(None, max_length=100),
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    feed = BookmarksFeed(unread_only=unread_only, list_id=list_id, query=query)
    return await _resolve(pipeline, feed, requester, args)


@router.get("/sources/{source_id}", response_model=FeedConnection)
async def source_feed(
    source_id: str,
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
    sources: SourceStore = Depends(get_source_store),
    memberships: MembershipStore = Depends(get_membership_store),
):
    try:
        await ensure_source_permissions(sources, memberships, source_id, requester)
    except FeedError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return await _resolve(pipeline, SourceFeed(source_id=source_id), requester, args)


@router.get("/tags/{tag}", response_model=FeedConnection)
async def tag_feed(
    tag: str,
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    return await _resolve(pipeline, TagFeed(tag=tag), requester, args)


@router.get("/ids", response_model=FeedConnection)
async def fixed_ids_feed(
    ids: list[str] = Query(default=[]),
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    return await _resolve(pipeline, FixedIdsFeed(ids=tuple(ids)), requester, args)


@router.get("/random", response_model=FeedConnection)
async def random_feed(
    args: PageArgs = Depends(),
    requester: Requester = Depends(get_requester),
    pipeline: FeedPipeline = Depends(get_pipeline),
):
    return await _resolve(pipeline, RandomFeed(), requester, args)
