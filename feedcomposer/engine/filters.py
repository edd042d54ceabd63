"""
Filter resolution — turns a feed's stored configuration into a FilterSet.

Sources merged here:
  • feed tag rules          → include_tags / blocked_tags
  • blocked feed sources    → exclude_sources
  • squad memberships       → source_ids_to_show / source_ids_to_hide
  • advanced settings       → exclude_content_types / exclude_source_types /
                              blocked_content_curation

Filters are best-effort personalisation, not access control: every lookup
that fails degrades to an empty list with a warning. The visibility gate is
what keeps forbidden content out.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from opentelemetry import trace

from feedcomposer.stores.feed_config import (
    AdvancedSettingRecord,
    AdvancedSettingsStore,
    Membership,
    MembershipStore,
    SourceBlockStore,
    TagRule,
    TagRuleStore,
)
from feedcomposer.telemetry import FILTER_LOOKUP_FAILURES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

GROUP_CONTENT_TYPES = "content_types"
GROUP_SOURCE_TYPES = "source_types"
GROUP_CONTENT_CURATION = "content_curation"


@dataclass(frozen=True)
class FilterSet:
    include_sources: tuple[str, ...] = ()
    exclude_sources: tuple[str, ...] = ()
    include_tags: tuple[str, ...] = ()
    blocked_tags: tuple[str, ...] = ()
    exclude_content_types: tuple[str, ...] = ()
    exclude_source_types: tuple[str, ...] = ()
    blocked_content_curation: tuple[str, ...] = ()
    source_ids_to_show: tuple[str, ...] = ()
    source_ids_to_hide: tuple[str, ...] = ()


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def excluded_advanced_settings(
    records: Iterable[AdvancedSettingRecord],
) -> list[AdvancedSettingRecord]:
    """
    A setting is excluded when the feed explicitly disabled it or, with no
    override, when the setting itself is disabled by default.
    """
    excluded = []
    for record in records:
        if record.enabled is not None:
            if record.enabled is False:
                excluded.append(record)
        elif record.default_enabled is False:
            excluded.append(record)
    return excluded


def split_memberships(
    memberships: Iterable[Membership], watercooler_id: str
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return (show, hide); the default community is hidden unless shown."""
    memberships = list(memberships)
    show = _dedupe(m.source_id for m in memberships if not m.hide)
    shown = set(show)
    hide = [m.source_id for m in memberships if m.hide and m.source_id not in shown]
    if watercooler_id not in shown:
        hide.append(watercooler_id)
    return show, _dedupe(hide)


class FilterResolver:
    def __init__(
        self,
        tag_rules: TagRuleStore,
        source_blocks: SourceBlockStore,
        memberships: MembershipStore,
        advanced_settings: AdvancedSettingsStore,
        *,
        watercooler_id: str,
    ) -> None:
        self._tag_rules = tag_rules
        self._source_blocks = source_blocks
        self._memberships = memberships
        self._advanced_settings = advanced_settings
        self.watercooler_id = watercooler_id

    async def _lookup(
        self, name: str, fetch: Callable[[str], Awaitable[list[T]]], key: Optional[str]
    ) -> list[T]:
        if not key:
            return []
        try:
            return list(await fetch(key))
        except Exception as exc:
            logger.warning(
                "Filter lookup %s failed (key=%s): %s; using empty restriction",
                name,
                key,
                exc,
            )
            FILTER_LOOKUP_FAILURES_TOTAL.labels(lookup=name).inc()
            return []

    async def resolve(self, feed_id: Optional[str], user_id: Optional[str] = None) -> FilterSet:
        if not feed_id:
            return FilterSet()

        with tracer.start_as_current_span("feed.resolve_filters") as span:
            span.set_attribute("feed.id", feed_id)
            tag_rules, blocked_sources, memberships, settings = await asyncio.gather(
                self._lookup("tags", self._tag_rules.get, feed_id),
                self._lookup("sources", self._source_blocks.get, feed_id),
                self._lookup("memberships", self._memberships.get, user_id),
                self._lookup("advanced_settings", self._advanced_settings.get, feed_id),
            )

        return self.merge(tag_rules, blocked_sources, memberships, settings)

    def merge(
        self,
        tag_rules: Iterable[TagRule],
        blocked_sources: Iterable[str],
        memberships: Iterable[Membership],
        settings: Iterable[AdvancedSettingRecord],
    ) -> FilterSet:
        tag_rules = list(tag_rules)
        show, hide = split_memberships(memberships, self.watercooler_id)

        grouped: dict[str, list[str]] = {
            GROUP_CONTENT_TYPES: [],
            GROUP_SOURCE_TYPES: [],
            GROUP_CONTENT_CURATION: [],
        }
        for setting in excluded_advanced_settings(settings):
            option_type = (setting.options or {}).get("type")
            if option_type and setting.group in grouped:
                grouped[setting.group].append(option_type)

        return FilterSet(
            exclude_sources=_dedupe([*blocked_sources, *hide]),
            include_tags=_dedupe(r.tag for r in tag_rules if not r.blocked),
            blocked_tags=_dedupe(r.tag for r in tag_rules if r.blocked),
            exclude_content_types=_dedupe(grouped[GROUP_CONTENT_TYPES]),
            exclude_source_types=_dedupe(grouped[GROUP_SOURCE_TYPES]),
            blocked_content_curation=_dedupe(grouped[GROUP_CONTENT_CURATION]),
            source_ids_to_show=show,
            source_ids_to_hide=hide,
        )
