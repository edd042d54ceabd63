"""
Page generators — one pagination contract, two strategies.

  OffsetPageGenerator  page = (offset, limit); small stable listings such as
                       fixed id lists. Cursor = absolute node position.
  KeysetPageGenerator  page = (last key, last id, limit); unbounded ranked
                       feeds. Cursor = the node's ordering key + its id.

Both fetch `limit + 1` rows and use the extra row only to decide
`has_next_page`, so no separate count query is ever issued.
"""
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from sqlalchemy import Select, and_, or_
from sqlalchemy.sql.elements import ColumnElement

from feedcomposer.engine.cursors import (
    Cursor,
    KeysetCursor,
    OffsetCursor,
    decode_cursor,
)
from feedcomposer.errors import FeedValidationError
from feedcomposer.models import Post

CURSOR_KEY = "cursor_key"


@dataclass(frozen=True)
class OffsetPage:
    limit: int
    offset: int = 0


@dataclass(frozen=True)
class KeysetPage:
    limit: int
    after: Optional[KeysetCursor] = None


Page = Union[OffsetPage, KeysetPage]


def _page_size(first: Optional[int], default: int, maximum: int) -> int:
    if first is None:
        return min(default, maximum)
    if isinstance(first, bool) or not isinstance(first, int):
        raise FeedValidationError("first must be an integer")
    if first <= 0:
        raise FeedValidationError("first must be a positive integer")
    return min(first, maximum)


class PageGenerator(Protocol):
    def connection_args_to_page(
        self, first: Optional[int], after: Optional[str]
    ) -> Page: ...

    def has_previous_page(self, page: Page, node_count: int) -> bool: ...

    def has_next_page(self, page: Page, node_count: int) -> bool: ...

    def node_to_cursor(self, page: Page, node: Post, key: Any, index: int) -> Cursor: ...

    def apply_paging(self, page: Page, stmt: Select, order_key: ColumnElement) -> Select: ...


class OffsetPageGenerator:
    def __init__(self, default_limit: int, max_limit: int) -> None:
        self.default_limit = default_limit
        self.max_limit = max_limit

    def connection_args_to_page(
        self, first: Optional[int], after: Optional[str]
    ) -> OffsetPage:
        limit = _page_size(first, self.default_limit, self.max_limit)
        if after is None:
            return OffsetPage(limit=limit, offset=0)
        cursor = decode_cursor(after, expected=OffsetCursor)
        return OffsetPage(limit=limit, offset=cursor.offset + 1)

    def has_previous_page(self, page: OffsetPage, node_count: int) -> bool:
        return page.offset > 0

    def has_next_page(self, page: OffsetPage, node_count: int) -> bool:
        return node_count > page.limit

    def node_to_cursor(
        self, page: OffsetPage, node: Post, key: Any, index: int
    ) -> OffsetCursor:
        return OffsetCursor(offset=page.offset + index)

    def apply_paging(
        self, page: OffsetPage, stmt: Select, order_key: ColumnElement
    ) -> Select:
        """Ascending by `order_key` (list position, random draw, ...)."""
        key = order_key.label(CURSOR_KEY)
        return (
            stmt.add_columns(key)
            .order_by(key, Post.id)
            .offset(page.offset)
            .limit(page.limit + 1)
        )


class KeysetPageGenerator:
    def __init__(self, default_limit: int, max_limit: int) -> None:
        self.default_limit = default_limit
        self.max_limit = max_limit

    def connection_args_to_page(
        self, first: Optional[int], after: Optional[str]
    ) -> KeysetPage:
        limit = _page_size(first, self.default_limit, self.max_limit)
        if after is None:
            return KeysetPage(limit=limit)
        return KeysetPage(limit=limit, after=decode_cursor(after, expected=KeysetCursor))

    def has_previous_page(self, page: KeysetPage, node_count: int) -> bool:
        return page.after is not None

    def has_next_page(self, page: KeysetPage, node_count: int) -> bool:
        return node_count > page.limit

    def node_to_cursor(
        self, page: KeysetPage, node: Post, key: Any, index: int
    ) -> KeysetCursor:
        return KeysetCursor(key=key, id=node.id)

    def apply_paging(
        self, page: KeysetPage, stmt: Select, order_key: ColumnElement
    ) -> Select:
        """Descending by `order_key`, ties broken by descending post id."""
        if page.after is not None:
            # (key, id) < (after.key, after.id), spelled out
            stmt = stmt.where(
                or_(
                    order_key < page.after.key,
                    and_(order_key == page.after.key, Post.id < page.after.id),
                )
            )
        key = order_key.label(CURSOR_KEY)
        return (
            stmt.add_columns(key)
            .order_by(key.desc(), Post.id.desc())
            .limit(page.limit + 1)
        )

