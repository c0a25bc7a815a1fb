"""Unit tests for the feed orchestrator.

The feed fetcher is a plain async function so each test controls what
the "network" returns and how long it takes.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from feed_sieve.events import STATE_CHANGED, FeedEvents
from feed_sieve.models.schemas import CategoryState
from feed_sieve.services.orchestrator import FeedOrchestrator, LoadState
from feed_sieve.services.preferences import PreferenceStoreClient
from feed_sieve.services.visit_tracker import VisitTimeTracker
from feed_sieve.storage import database
from feed_sieve.storage.local_cache import CacheKeys
from feed_sieve.utils.dates import to_iso
from tests.factories import BASE_TIME, make_feed, make_item


pytestmark = pytest.mark.anyio

FEED_URL = "https://example.com/feed"


def sample_feed():
    return make_feed(
        make_item("Policy layoffs", 1, categories=["Policy"]),
        make_item("Science breakthrough", 2, categories=["Science"]),
        make_item("Gaming news", 3, categories=["Gaming"], content="crypto tie-in"),
    )


class FakeFetcher:
    """Async feed fetcher that counts calls and can be told to fail."""

    def __init__(self, feed=None, delay=0.0):
        self.feed = feed or sample_feed()
        self.delay = delay
        self.error = None
        self.calls = 0

    async def __call__(self, url):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.feed


def build(cache, fetcher, user_id=None, ready_timeout=5.0, events=None):
    def identity():
        return user_id

    return FeedOrchestrator(
        feed_url=FEED_URL,
        preferences=PreferenceStoreClient(cache),
        tracker=VisitTimeTracker(cache, identity),
        fetch_feed=fetcher,
        identity=identity,
        cache=cache,
        events=events,
        ready_timeout=ready_timeout,
    )


def titles(orch):
    return [item.title for item in orch.items]


class TestLoadCycle:
    """Tests for readiness, ordering of the visit timestamps and failures."""

    async def test_start_loads_rules_then_filters(self, cache):
        cache.set(CacheKeys.BLOCKED_CATEGORIES, ["Policy"])
        fetcher = FakeFetcher()
        orch = build(cache, fetcher)

        await orch.start()

        assert orch.state is LoadState.READY
        assert orch.blocked_categories == ["Policy"]
        assert titles(orch) == ["Gaming news", "Science breakthrough"]
        assert orch.stats.total_items == 3
        assert orch.stats.blocked_count == 1

    async def test_fetch_waits_for_rules(self, cache):
        fetcher = FakeFetcher()
        orch = build(cache, fetcher)

        task = asyncio.create_task(orch.load())
        await asyncio.sleep(0.05)

        assert fetcher.calls == 0
        assert orch.state is LoadState.LOADING

        await orch.preferences.load(None)
        assert await task is True
        assert fetcher.calls == 1
        assert orch.state is LoadState.READY

    async def test_readiness_timeout_proceeds_with_cached_rules(self, cache):
        fetcher = FakeFetcher()
        orch = build(cache, fetcher, ready_timeout=0.01)

        assert await orch.load() is True

        assert fetcher.calls == 1
        assert orch.state is LoadState.READY

    async def test_concurrent_loads_fetch_and_commit_once(self, cache):
        """Two overlapping resets must not double-advance the visit time."""
        fetcher = FakeFetcher(delay=0.02)
        orch = build(cache, fetcher)
        await orch.preferences.load(None)

        with patch.object(
            orch.tracker, "commit_this_load", wraps=orch.tracker.commit_this_load
        ) as commit:
            results = await asyncio.gather(orch.load(True), orch.load(True))

        assert sorted(results) == [False, True]
        assert fetcher.calls == 1
        assert orch.fetch_count == 1
        assert commit.await_count == 1

    async def test_load_allowed_again_after_completion(self, cache):
        fetcher = FakeFetcher()
        orch = build(cache, fetcher)
        await orch.preferences.load(None)

        assert await orch.load() is True
        assert await orch.load() is True
        assert fetcher.calls == 2

    async def test_previous_load_is_computed_before_commit(self, cache):
        cache.set(CacheKeys.THIS_LOAD, to_iso(BASE_TIME))
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)

        await orch.load(reset_visit_time=True)

        assert orch.previous_load == BASE_TIME
        assert orch.tracker.cached_this_load() > BASE_TIME
        assert orch.tracker.cached_previous_load() == BASE_TIME

    async def test_items_before_cutoff_are_seen_and_sorted_last(self, cache):
        cache.set(CacheKeys.THIS_LOAD, to_iso(BASE_TIME + timedelta(hours=2, minutes=30)))
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)

        await orch.load(reset_visit_time=True)

        seen = {item.title: orch.is_seen(item) for item in orch.items}
        assert titles(orch) == ["Gaming news", "Science breakthrough", "Policy layoffs"]
        assert seen == {
            "Gaming news": False,
            "Science breakthrough": True,
            "Policy layoffs": True,
        }

    async def test_plain_reload_keeps_visit_times(self, cache):
        cache.set(CacheKeys.THIS_LOAD, to_iso(BASE_TIME))
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)

        await orch.load(reset_visit_time=False)

        assert orch.previous_load is None
        assert orch.tracker.cached_this_load() == BASE_TIME

    async def test_failure_keeps_view_and_skips_commit(self, cache):
        fetcher = FakeFetcher()
        orch = build(cache, fetcher)
        await orch.preferences.load(None)
        await orch.load(reset_visit_time=True)
        committed = orch.tracker.cached_this_load()
        before = titles(orch)

        fetcher.error = ConnectionError("network down")
        assert await orch.load(reset_visit_time=True) is True

        assert orch.state is LoadState.FAILED
        assert orch.error == "Error fetching RSS feed. Please try again later."
        assert titles(orch) == before
        assert orch.tracker.cached_this_load() == committed

    async def test_successful_load_clears_error(self, cache):
        fetcher = FakeFetcher()
        fetcher.error = ConnectionError("network down")
        orch = build(cache, fetcher)
        await orch.preferences.load(None)

        await orch.load()
        assert orch.state is LoadState.FAILED

        fetcher.error = None
        await orch.load()
        assert orch.state is LoadState.READY
        assert orch.error == ""

    async def test_processing_failure_does_not_wedge_loading(self, cache):
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)

        failing = AsyncMock(side_effect=RuntimeError("disk full"))
        with patch.object(orch.tracker, "commit_this_load", failing):
            with pytest.raises(RuntimeError):
                await orch.load(reset_visit_time=True)

        assert orch.state is LoadState.FAILED
        assert orch.error == "Error processing RSS feed. Please try again later."

        # The next load is not dropped
        assert await orch.load() is True
        assert orch.state is LoadState.READY

    async def test_fetched_feed_is_cached_and_restorable(self, cache):
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)
        await orch.load()

        restored = build(cache, FakeFetcher())

        assert restored.restore_cached_feed() is True
        assert titles(restored) == titles(orch)
        assert restored.state is LoadState.READY

    async def test_restore_without_cache(self, cache):
        orch = build(cache, FakeFetcher())

        assert orch.restore_cached_feed() is False
        assert orch.feed is None

    async def test_state_events(self, cache):
        events = FeedEvents()
        seen = []
        events.subscribe(lambda name, payload: seen.append((name, payload.get("state"))))
        orch = build(cache, FakeFetcher(), events=events)
        await orch.preferences.load(None)

        await orch.load()

        states = [state for name, state in seen if name == STATE_CHANGED]
        assert states == [LoadState.LOADING, LoadState.READY]


class TestCategoryStaging:
    """Staged categories only filter once applied."""

    async def loaded(self, cache, user_id=None):
        orch = build(cache, FakeFetcher(), user_id=user_id)
        await orch.preferences.load(None)
        await orch.load()
        return orch

    async def test_staging_does_not_filter(self, cache):
        orch = await self.loaded(cache)

        assert orch.stage("Policy") is True

        assert orch.category_state("Policy") is CategoryState.STAGED
        assert "Policy layoffs" in titles(orch)

    async def test_apply_filters_and_saves(self, cache):
        orch = await self.loaded(cache)
        orch.stage("Policy")
        orch.stage("Gaming")

        assert await orch.apply_staged() == ["Policy", "Gaming"]

        assert titles(orch) == ["Science breakthrough"]
        assert orch.staged_categories == []
        assert cache.get(CacheKeys.BLOCKED_CATEGORIES) == ["Policy", "Gaming"]

    async def test_toggle_then_cancel(self, cache):
        orch = await self.loaded(cache)

        assert orch.toggle_staged("Policy") is CategoryState.STAGED
        assert orch.cancel_staged() == ["Policy"]

        assert orch.category_state("Policy") is CategoryState.UNBLOCKED
        assert len(orch.items) == 3

    async def test_unblock_restores_items(self, cache):
        orch = await self.loaded(cache)
        orch.stage("Policy")
        await orch.apply_staged()

        assert await orch.unblock_category("Policy") is True

        assert "Policy layoffs" in titles(orch)
        assert cache.get(CacheKeys.BLOCKED_CATEGORIES) == []

    async def test_unblock_unknown_category(self, cache):
        orch = await self.loaded(cache)

        assert await orch.unblock_category("Nope") is False

    async def test_clear_categories(self, cache):
        orch = await self.loaded(cache)
        orch.stage("Policy")
        orch.stage("Science")
        await orch.apply_staged()

        assert await orch.clear_categories() == ["Policy", "Science"]

        assert len(orch.items) == 3

    async def test_apply_during_rules_reload_keeps_applied_label(self, cache, in_memory_db):
        orch = build(cache, FakeFetcher(), user_id="user-1")
        gate = asyncio.Event()

        async def slow_fetch(user_id):
            await gate.wait()
            return ["Science"]

        with patch.object(database, "fetch_blocked_categories", slow_fetch):
            reload = orch.reload_preferences_in_background()
            await asyncio.sleep(0)
            orch.stage("Policy")

            apply = asyncio.create_task(orch.apply_staged())
            await asyncio.sleep(0.01)
            assert not apply.done()

            gate.set()
            await reload
            assert await apply == ["Policy"]

        orch.refilter()
        assert orch.blocked_categories == ["Science", "Policy"]
        assert await database.fetch_blocked_categories("user-1") == ["Science", "Policy"]

    async def test_save_failure_still_filters_locally(self, cache):
        orch = await self.loaded(cache, user_id="user-1")
        orch.stage("Policy")

        failing = AsyncMock(side_effect=ConnectionError("store unreachable"))
        with patch.object(database, "save_blocked_categories", failing):
            with pytest.raises(ConnectionError):
                await orch.apply_staged()

        assert "Policy layoffs" not in titles(orch)
        assert cache.get(CacheKeys.BLOCKED_CATEGORIES) == ["Policy"]


class TestPhraseRules:
    """Adding or removing a phrase re-filters the current feed."""

    async def loaded(self, cache):
        orch = build(cache, FakeFetcher())
        await orch.preferences.load(None)
        await orch.load()
        return orch

    async def test_add_phrase_filters(self, cache):
        orch = await self.loaded(cache)

        rule = await orch.add_phrase("LAYOFFS", match_title=True, match_content=False)

        assert rule.is_local
        assert "Policy layoffs" not in titles(orch)
        assert orch.blocked_phrases == [rule]

    async def test_content_phrase(self, cache):
        orch = await self.loaded(cache)

        await orch.add_phrase("crypto", match_title=False, match_content=True)

        assert "Gaming news" not in titles(orch)

    async def test_invalid_phrase_raises(self, cache):
        orch = await self.loaded(cache)

        with pytest.raises(ValueError):
            await orch.add_phrase("   ")
        assert orch.blocked_phrases == []

    async def test_update_phrase(self, cache):
        orch = await self.loaded(cache)
        rule = await orch.add_phrase("layoffs")

        updated = await orch.update_phrase(rule.id, phrase="breakthrough")

        assert updated.phrase == "breakthrough"
        assert "Policy layoffs" in titles(orch)
        assert "Science breakthrough" not in titles(orch)

    async def test_update_unknown_phrase(self, cache):
        orch = await self.loaded(cache)

        assert await orch.update_phrase("missing", phrase="x") is None

    async def test_update_rejects_rule_matching_nothing(self, cache):
        orch = await self.loaded(cache)
        rule = await orch.add_phrase("layoffs")

        with pytest.raises(ValueError):
            await orch.update_phrase(rule.id, match_title=False, match_content=False)

    async def test_remove_phrase_restores_items(self, cache):
        orch = await self.loaded(cache)
        rule = await orch.add_phrase("layoffs")

        assert await orch.remove_phrase(rule.id) is True

        assert "Policy layoffs" in titles(orch)
        assert await orch.remove_phrase(rule.id) is False

    async def test_clear_phrases(self, cache):
        orch = await self.loaded(cache)
        await orch.add_phrase("layoffs")
        await orch.add_phrase("breakthrough")

        await orch.clear_phrases()

        assert orch.blocked_phrases == []
        assert len(orch.items) == 3
