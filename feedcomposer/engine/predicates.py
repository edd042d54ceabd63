"""
Feed predicate builders.

A predicate is a SQLAlchemy `Select` over Post. `Select` is generative:
every `.where()` / `.join()` returns a new statement, so builders are pure
functions `(requester, args..., stmt) -> stmt` and can be chained freely
(the configured feed is the anonymous feed plus an unread restriction).

Builders only narrow the result set. Visibility rules and the paging window
are applied afterwards by the pipeline.
"""
from typing import Optional, Sequence

from sqlalchemy import Select, and_, case, exists, false, literal
from sqlalchemy.sql.elements import ColumnElement

from feedcomposer.engine.filters import FilterSet
from feedcomposer.engine.kinds import Requester
from feedcomposer.engine.visibility import anti_abuse_clause
from feedcomposer.models import Bookmark, Post, PostKeyword, View


# ─────────────────────── Sub-predicates ───────────────────────────────────

def where_tags(tags: Sequence[str]) -> ColumnElement[bool]:
    """Post carries at least one of `tags`."""
    return exists().where(
        PostKeyword.post_id == Post.id,
        PostKeyword.keyword.in_(list(tags)),
    )


def where_not_tags(tags: Sequence[str]) -> ColumnElement[bool]:
    return ~where_tags(tags)


def where_keyword(tag: str) -> ColumnElement[bool]:
    return exists().where(
        PostKeyword.post_id == Post.id,
        PostKeyword.keyword == tag,
    )


def where_unread(user_id: Optional[str]) -> ColumnElement[bool]:
    """No view record for this user."""
    return ~exists().where(
        View.post_id == Post.id,
        View.user_id == (user_id or ""),
    )


# ─────────────────────── Builders ─────────────────────────────────────────

def anonymous_feed_builder(
    requester: Requester, filters: Optional[FilterSet], stmt: Select
) -> Select:
    if filters is None:
        return stmt
    # Include and exclude never combine: an explicit source list wins
    if filters.include_sources:
        stmt = stmt.where(Post.source_id.in_(list(filters.include_sources)))
    elif filters.exclude_sources:
        stmt = stmt.where(Post.source_id.not_in(list(filters.exclude_sources)))

    if filters.include_tags:
        stmt = stmt.where(where_tags(filters.include_tags))
    if filters.blocked_tags:
        stmt = stmt.where(where_not_tags(filters.blocked_tags))
    return stmt


def configured_feed_builder(
    requester: Requester,
    filters: Optional[FilterSet],
    unread_only: bool,
    stmt: Select,
) -> Select:
    stmt = anonymous_feed_builder(requester, filters, stmt)
    if unread_only:
        stmt = stmt.where(where_unread(requester.user_id))
    return stmt


def bookmarks_feed_builder(
    requester: Requester,
    unread_only: bool,
    list_id: Optional[str],
    query: Optional[str],
    stmt: Select,
) -> Select:
    stmt = stmt.join(
        Bookmark,
        and_(Bookmark.post_id == Post.id, Bookmark.user_id == requester.user_id),
    )
    if unread_only:
        stmt = stmt.where(where_unread(requester.user_id))
    # Named lists are a premium feature; others see all their bookmarks
    if list_id and requester.premium:
        stmt = stmt.where(Bookmark.list_id == list_id)
    if query:
        for token in query.split():
            stmt = stmt.where(Post.title.icontains(token, autoescape=True))
    return stmt


def source_feed_builder(
    requester: Requester,
    source_id: str,
    stmt: Select,
    *,
    community_source: str,
) -> Select:
    stmt = stmt.where(Post.source_id == source_id)
    if source_id == community_source:
        return stmt.where(Post.banned.is_(False))
    return stmt.where(anti_abuse_clause(requester))


def tag_feed_builder(requester: Requester, tag: str, stmt: Select) -> Select:
    return stmt.where(where_keyword(tag))


def fixed_ids_feed_builder(
    requester: Requester, ids: Sequence[str], stmt: Select
) -> Select:
    if not ids:
        # An empty list restricts to nothing, never to everything
        return stmt.where(false())
    return stmt.where(Post.id.in_(list(dict.fromkeys(ids))))


def fixed_ids_order_key(ids: Sequence[str]) -> ColumnElement:
    """Position of the post in `ids`; duplicates keep their first position."""
    positions: dict[str, int] = {}
    for index, post_id in enumerate(ids):
        positions.setdefault(post_id, index)
    if not positions:
        return literal(0)
    return case(positions, value=Post.id, else_=len(ids))


def random_feed_builder(
    requester: Requester, filters: Optional[FilterSet], stmt: Select
) -> Select:
    return anonymous_feed_builder(requester, filters, stmt)
