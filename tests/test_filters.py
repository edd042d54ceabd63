import logging

import pytest

from feedcomposer.engine.filters import (
    FilterResolver,
    FilterSet,
    excluded_advanced_settings,
    split_memberships,
)
from feedcomposer.models import (
    AdvancedSettings,
    FeedAdvancedSettings,
    FeedSource,
    FeedTag,
    SourceMember,
)
from feedcomposer.stores.feed_config import (
    AdvancedSettingRecord,
    Membership,
    SqlAdvancedSettingsStore,
    SqlMembershipStore,
    SqlSourceBlockStore,
    SqlTagRuleStore,
    TagRule,
)

WATERCOOLER = "watercooler"


class StaticStore:
    def __init__(self, rows):
        self.rows = rows
        self.keys = []

    async def get(self, key):
        self.keys.append(key)
        return self.rows


class FailingStore:
    async def get(self, key):
        raise RuntimeError(f"lookup for {key} exploded")


def make_resolver(tags=(), blocked=(), memberships=(), settings=(), **overrides):
    stores = {
        "tag_rules": StaticStore(list(tags)),
        "source_blocks": StaticStore(list(blocked)),
        "memberships": memberships
        if hasattr(memberships, "get")
        else StaticStore(list(memberships)),
        "advanced_settings": StaticStore(list(settings)),
    }
    stores.update(overrides)
    return FilterResolver(**stores, watercooler_id=WATERCOOLER)


class TestExcludedAdvancedSettings:
    def test_explicit_override_wins_over_default(self):
        records = [
            AdvancedSettingRecord(id=1, group="content_types", enabled=False, default_enabled=True),
            AdvancedSettingRecord(id=2, group="content_types", enabled=True, default_enabled=False),
        ]
        assert [r.id for r in excluded_advanced_settings(records)] == [1]

    def test_default_applies_without_override(self):
        records = [
            AdvancedSettingRecord(id=1, group="content_types", default_enabled=False),
            AdvancedSettingRecord(id=2, group="content_types", default_enabled=True),
        ]
        assert [r.id for r in excluded_advanced_settings(records)] == [1]


class TestSplitMemberships:
    def test_watercooler_hidden_by_default(self):
        show, hide = split_memberships([], WATERCOOLER)
        assert show == ()
        assert hide == (WATERCOOLER,)

    def test_watercooler_member_sees_it(self):
        show, hide = split_memberships([Membership(WATERCOOLER, hide=False)], WATERCOOLER)
        assert show == (WATERCOOLER,)
        assert WATERCOOLER not in hide

    def test_hidden_squads_are_hidden(self):
        show, hide = split_memberships(
            [Membership("s1", hide=True), Membership("s2", hide=False)], WATERCOOLER
        )
        assert show == ("s2",)
        assert hide == ("s1", WATERCOOLER)

    def test_show_and_hide_never_overlap(self):
        memberships = [
            Membership("s1", hide=True),
            Membership("s1", hide=False),
            Membership("s2", hide=True),
            Membership("s2", hide=True),
        ]
        show, hide = split_memberships(memberships, WATERCOOLER)
        assert not set(show) & set(hide)
        assert hide == ("s2", WATERCOOLER)


class TestFilterResolver:
    async def test_no_feed_id_means_no_restriction(self):
        tags = StaticStore([TagRule("rust", blocked=False)])
        resolver = make_resolver(tag_rules=tags)
        assert await resolver.resolve(None, "u1") == FilterSet()
        assert tags.keys == []

    async def test_tag_rules_split_into_include_and_block(self):
        resolver = make_resolver(
            tags=[
                TagRule("rust", blocked=False),
                TagRule("go", blocked=False),
                TagRule("crypto", blocked=True),
            ]
        )
        filters = await resolver.resolve("feed-1", "u1")
        assert filters.include_tags == ("rust", "go")
        assert filters.blocked_tags == ("crypto",)

    async def test_blocked_and_hidden_sources_are_excluded_once(self):
        resolver = make_resolver(
            blocked=["a", "s1"],
            memberships=[Membership("s1", hide=True)],
        )
        filters = await resolver.resolve("feed-1", "u1")
        assert filters.exclude_sources == ("a", "s1", WATERCOOLER)
        assert filters.source_ids_to_hide == ("s1", WATERCOOLER)

    async def test_advanced_settings_grouped_by_kind(self):
        resolver = make_resolver(
            settings=[
                AdvancedSettingRecord(
                    id=1, group="content_types", options={"type": "video:youtube"}, enabled=False
                ),
                AdvancedSettingRecord(
                    id=2, group="source_types", options={"type": "squad"}, default_enabled=False
                ),
                AdvancedSettingRecord(
                    id=3, group="content_curation", options={"type": "release"}, enabled=False
                ),
                AdvancedSettingRecord(id=4, group="advanced", options={}, enabled=False),
                AdvancedSettingRecord(
                    id=5, group="content_types", options={"type": "share"}, enabled=True
                ),
            ]
        )
        filters = await resolver.resolve("feed-1", "u1")
        assert filters.exclude_content_types == ("video:youtube",)
        assert filters.exclude_source_types == ("squad",)
        assert filters.blocked_content_curation == ("release",)

    async def test_memberships_skipped_without_user(self):
        memberships = StaticStore([Membership("s1", hide=False)])
        resolver = make_resolver(memberships=memberships)
        filters = await resolver.resolve("feed-1")
        assert memberships.keys == []
        assert filters.source_ids_to_show == ()

    async def test_failed_lookup_degrades_to_empty(self, caplog):
        resolver = make_resolver(
            tags=[TagRule("rust", blocked=False)],
            source_blocks=FailingStore(),
            advanced_settings=FailingStore(),
        )
        with caplog.at_level(logging.WARNING, logger="feedcomposer.engine.filters"):
            filters = await resolver.resolve("feed-1", "u1")

        assert filters.include_tags == ("rust",)
        assert filters.exclude_sources == (WATERCOOLER,)
        assert filters.exclude_content_types == ()
        assert "Filter lookup sources failed" in caplog.text
        assert "Filter lookup advanced_settings failed" in caplog.text

    async def test_every_lookup_failing_still_resolves(self):
        resolver = make_resolver(
            tag_rules=FailingStore(),
            source_blocks=FailingStore(),
            memberships=FailingStore(),
            advanced_settings=FailingStore(),
        )
        filters = await resolver.resolve("feed-1", "u1")
        assert filters == FilterSet(
            exclude_sources=(WATERCOOLER,), source_ids_to_hide=(WATERCOOLER,)
        )


@pytest.mark.usefixtures("sources")
class TestSqlFilterStores:
    async def test_resolves_from_feed_configuration_tables(self, sessions, add):
        await add(
            FeedTag(feed_id="feed-1", tag="rust", blocked=False),
            FeedTag(feed_id="feed-1", tag="crypto", blocked=True),
            FeedTag(feed_id="feed-2", tag="go", blocked=False),
            FeedSource(feed_id="feed-1", source_id="b", blocked=True),
            FeedSource(feed_id="feed-1", source_id="a", blocked=False),
            SourceMember(source_id="squad-public", user_id="u1", flags={"hideFeedPosts": True}),
            SourceMember(source_id=WATERCOOLER, user_id="u1", flags={}),
            AdvancedSettings(
                id=1, title="Videos", group="content_types", options={"type": "video:youtube"}
            ),
            AdvancedSettings(
                id=2,
                title="Squads",
                group="source_types",
                options={"type": "squad"},
                default_enabled_state=False,
            ),
        )
        await add(FeedAdvancedSettings(feed_id="feed-1", advanced_settings_id=1, enabled=False))

        resolver = FilterResolver(
            SqlTagRuleStore(sessions),
            SqlSourceBlockStore(sessions),
            SqlMembershipStore(sessions),
            SqlAdvancedSettingsStore(sessions),
            watercooler_id=WATERCOOLER,
        )
        filters = await resolver.resolve("feed-1", "u1")

        assert set(filters.include_tags) == {"rust"}
        assert set(filters.blocked_tags) == {"crypto"}
        assert set(filters.exclude_sources) == {"b", "squad-public"}
        assert filters.source_ids_to_show == (WATERCOOLER,)
        assert filters.exclude_content_types == ("video:youtube",)
        assert filters.exclude_source_types == ("squad",)
