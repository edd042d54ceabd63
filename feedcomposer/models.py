"""
SQLAlchemy ORM models for the content store.

Tables:
  sources                 — machine-curated sources and community squads
  posts                   — content items; `score` is the popularity rank key
  post_keywords           — post × tag association
  views                   — user × post read history
  bookmarks               — user × post bookmarks, optionally in a named list
  user_posts              — per-user post state (hidden)
  feed_tags               — followed / blocked tags per feed
  feed_sources            — blocked sources per feed
  source_members          — squad memberships (flags.hideFeedPosts)
  advanced_settings       — global content/source-type toggles
  feed_advanced_settings  — per-feed overrides of those toggles

The engine only reads these tables; write-side workflows own them.
"""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Double,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from feedcomposer.database import Base


class SourceType(str, enum.Enum):
    MACHINE = "machine"
    SQUAD = "squad"


class PostType(str, enum.Enum):
    ARTICLE = "article"
    SHARE = "share"
    FREEFORM = "freeform"
    VIDEO_YOUTUBE = "video:youtube"
    COLLECTION = "collection"
    WELCOME = "welcome"


class Source(Base):
    __tablename__ = "sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    type: Mapped[str] = mapped_column(
        String(20), default=SourceType.MACHINE.value, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # {"publicThreshold": bool}: squads become publicly listed past it
    flags: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sources.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20), default=PostType.ARTICLE.value, nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    score: Mapped[float] = mapped_column(Double, default=0.0, nullable=False)
    private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    banned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    show_on_feed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    author_id: Mapped[Optional[str]] = mapped_column(String(36))
    scout_id: Mapped[Optional[str]] = mapped_column(String(36))
    # {"vordr": bool}, set by the anti-abuse pipeline
    flags: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_posts_source", "source_id"),
        Index("idx_posts_created", "created_at"),
        Index("idx_posts_score", "score"),
    )


class PostKeyword(Base):
    __tablename__ = "post_keywords"

    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id"), primary_key=True
    )
    keyword: Mapped[str] = mapped_column(String(255), primary_key=True)

    __table_args__ = (Index("idx_post_keywords_keyword", "keyword"),)


class View(Base):
    __tablename__ = "views"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id"), primary_key=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class Bookmark(Base):
    __tablename__ = "bookmarks"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id"), primary_key=True
    )
    list_id: Mapped[Optional[str]] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class UserPost(Base):
    __tablename__ = "user_posts"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id"), primary_key=True
    )
    hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class FeedTag(Base):
    __tablename__ = "feed_tags"

    feed_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tag: Mapped[str] = mapped_column(String(255), primary_key=True)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class FeedSource(Base):
    __tablename__ = "feed_sources"

    feed_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sources.id"), primary_key=True
    )
    blocked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SourceMember(Base):
    __tablename__ = "source_members"

    source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sources.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    role: Mapped[str] = mapped_column(String(20), default="member", nullable=False)
    # {"hideFeedPosts": bool}
    flags: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    __table_args__ = (Index("idx_source_members_user", "user_id"),)


class AdvancedSettings(Base):
    __tablename__ = "advanced_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    group: Mapped[str] = mapped_column(String(50), nullable=False)
    # {"type": "<post type | source type | curation label>"}
    options: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    default_enabled_state: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )


class FeedAdvancedSettings(Base):
    __tablename__ = "feed_advanced_settings"

    feed_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    advanced_settings_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("advanced_settings.id"), primary_key=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)
