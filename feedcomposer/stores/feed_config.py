"""
Stores behind filter resolution.

  TagRuleStore           feed_tags               → [TagRule]
  SourceBlockStore       feed_sources (blocked)  → [source_id]
  MembershipStore        source_members          → [Membership]
  AdvancedSettingsStore  advanced_settings
                         + feed_advanced_settings → [AdvancedSettingRecord]

Each lookup opens its own session so the resolver can run them concurrently
(an AsyncSession must not be shared between concurrent awaits). Errors are
raised as-is; degrading them is the resolver's call.
"""
from dataclasses import dataclass, field
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedcomposer.models import (
    AdvancedSettings,
    FeedAdvancedSettings,
    FeedSource,
    FeedTag,
    SourceMember,
)


@dataclass(frozen=True)
class TagRule:
    tag: str
    blocked: bool


@dataclass(frozen=True)
class Membership:
    source_id: str
    hide: bool


@dataclass(frozen=True)
class AdvancedSettingRecord:
    id: int
    group: str
    options: dict = field(default_factory=dict)
    enabled: Optional[bool] = None     # per-feed override, None when absent
    default_enabled: bool = True


class TagRuleStore(Protocol):
    async def get(self, feed_id: str) -> list[TagRule]: ...


class SourceBlockStore(Protocol):
    async def get(self, feed_id: str) -> list[str]: ...


class MembershipStore(Protocol):
    async def get(self, user_id: str) -> list[Membership]: ...


class AdvancedSettingsStore(Protocol):
    async def get(self, feed_id: str) -> list[AdvancedSettingRecord]: ...


class SqlTagRuleStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, feed_id: str) -> list[TagRule]:
        async with self._sessions() as session:
            rows = await session.execute(
                select(FeedTag.tag, FeedTag.blocked).where(FeedTag.feed_id == feed_id)
            )
            return [TagRule(tag=tag, blocked=bool(blocked)) for tag, blocked in rows.all()]


class SqlSourceBlockStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, feed_id: str) -> list[str]:
        async with self._sessions() as session:
            rows = await session.execute(
                select(FeedSource.source_id).where(
                    FeedSource.feed_id == feed_id,
                    FeedSource.blocked.is_(True),
                )
            )
            return [r[0] for r in rows.all()]


class SqlMembershipStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, user_id: str) -> list[Membership]:
        async with self._sessions() as session:
            rows = await session.execute(
                select(SourceMember.source_id, SourceMember.flags).where(
                    SourceMember.user_id == user_id
                )
            )
            return [
                Membership(source_id=source_id, hide=bool((flags or {}).get("hideFeedPosts")))
                for source_id, flags in rows.all()
            ]


class SqlAdvancedSettingsStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, feed_id: str) -> list[AdvancedSettingRecord]:
        async with self._sessions() as session:
            settings = (await session.scalars(select(AdvancedSettings))).all()
            overrides = await session.execute(
                select(
                    FeedAdvancedSettings.advanced_settings_id,
                    FeedAdvancedSettings.enabled,
                ).where(FeedAdvancedSettings.feed_id == feed_id)
            )
            enabled_by_id = {sid: bool(enabled) for sid, enabled in overrides.all()}

        return [
            AdvancedSettingRecord(
                id=s.id,
                group=s.group,
                options=dict(s.options or {}),
                enabled=enabled_by_id.get(s.id),
                default_enabled=s.default_enabled_state,
            )
            for s in settings
        ]
