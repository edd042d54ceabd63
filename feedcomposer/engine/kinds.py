"""
Feed requests as a closed union of feed kinds.

Each kind carries only the arguments its builder needs; the pipeline
dispatches on the concrete class, so a new kind must be added both here
(to `FeedKind`) and to the pipeline's match statement.
"""
import enum
from dataclasses import dataclass, field
from typing import Optional, Union

from feedcomposer.engine.filters import FilterSet


class Ranking(str, enum.Enum):
    POPULARITY = "POPULARITY"
    TIME = "TIME"


@dataclass(frozen=True)
class Requester:
    """Identity resolved upstream; `user_id` is None for anonymous traffic."""
    user_id: Optional[str] = None
    premium: bool = False


@dataclass(frozen=True)
class AnonymousFeed:
    filters: FilterSet = field(default_factory=FilterSet)


@dataclass(frozen=True)
class ConfiguredFeed:
    feed_id: str
    unread_only: bool = False


@dataclass(frozen=True)
class BookmarksFeed:
    unread_only: bool = False
    list_id: Optional[str] = None
    query: Optional[str] = None


@dataclass(frozen=True)
class SourceFeed:
    source_id: str


@dataclass(frozen=True)
class TagFeed:
    tag: str


@dataclass(frozen=True)
class FixedIdsFeed:
    ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RandomFeed:
    filters: FilterSet = field(default_factory=FilterSet)


FeedKind = Union[
    AnonymousFeed,
    ConfiguredFeed,
    BookmarksFeed,
    SourceFeed,
    TagFeed,
    FixedIdsFeed,
    RandomFeed,
]


@dataclass(frozen=True)
class FeedRequest:
    feed: FeedKind
    requester: Requester = field(default_factory=Requester)
    supported_types: Optional[tuple[str, ...]] = None
    first: Optional[int] = None
    after: Optional[str] = None
    ranking: Ranking = Ranking.POPULARITY
