"""Feed orchestrator.

Composes the preference store client, the visit-time tracker and the
filter engine into one load cycle:

1. compute the seen-cutoff (only when the visit time is being reset);
2. wait for the blocking rules to be loaded;
3. fetch the raw feed;
4. filter and order it into the current view;
5. commit the new visit time, only after 3 and 4 succeeded.

A failed fetch keeps the previous view. Only one load runs at a time;
calls made while a load is in flight are dropped.
"""

import asyncio
import functools
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from feed_sieve.config import ServerConfig, get_config
from feed_sieve.events import RULES_CHANGED, STATE_CHANGED, VIEW_UPDATED, FeedEvents
from feed_sieve.models.schemas import (
    CategoryState,
    Feed,
    FeedItem,
    FilterStats,
    PhraseBlockRule,
    PreferenceSnapshot,
)
from feed_sieve.services import filter_engine
from feed_sieve.services.category_board import CategoryBoard
from feed_sieve.services.feed_parser import parse_feed
from feed_sieve.services.preferences import PreferenceStoreClient, new_phrase_rule
from feed_sieve.services.visit_tracker import VisitTimeTracker
from feed_sieve.storage.local_cache import CacheKeys, LocalCache


logger = logging.getLogger(__name__)

FeedFetcher = Callable[[str], Awaitable[Feed]]
Identity = Callable[[], Optional[str]]


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class FeedOrchestrator:
    """Owns the fetched feed, the filtered view and the staged categories.

    Args:
        feed_url: The single feed this reader follows
        preferences: Source of the blocking rules
        tracker: Visit-time tracker for the seen-cutoff
        fetch_feed: Async callable returning a Feed for a URL
        identity: Callable returning the signed-in user id, or None
        cache: Local cache used for the raw feed snapshot
        events: Optional notifier for state and view changes
        ready_timeout: Seconds to wait for the rules before filtering anyway
    """

    def __init__(
        self,
        feed_url: str,
        preferences: PreferenceStoreClient,
        tracker: VisitTimeTracker,
        fetch_feed: FeedFetcher,
        identity: Identity,
        cache: LocalCache,
        events: Optional[FeedEvents] = None,
        ready_timeout: Optional[float] = 10.0,
    ):
        self.feed_url = feed_url
        self.preferences = preferences
        self.tracker = tracker
        self.fetch_feed = fetch_feed
        self.identity = identity
        self.cache = cache
        self.events = events or FeedEvents()
        self.ready_timeout = ready_timeout

        self.board = CategoryBoard(preferences.categories)
        self._board_generation = preferences.generation

        self._state = LoadState.IDLE
        self._error = ""
        self._raw: Optional[Feed] = None
        self._view: Optional[Feed] = None
        self._stats: Optional[FilterStats] = None
        self._previous_load = tracker.cached_previous_load()
        self._preferences_task: Optional[asyncio.Task] = None
        self.fetch_count = 0

    # Read-only views

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def error(self) -> str:
        return self._error

    @property
    def feed(self) -> Optional[Feed]:
        """The filtered, ordered feed currently on display."""
        return self._view

    @property
    def items(self) -> List[FeedItem]:
        return list(self._view.items) if self._view else []

    @property
    def stats(self) -> Optional[FilterStats]:
        return self._stats

    @property
    def previous_load(self):
        return self._previous_load

    @property
    def blocked_categories(self) -> List[str]:
        return self.board.blocked

    @property
    def staged_categories(self) -> List[str]:
        return self.board.staged

    @property
    def blocked_phrases(self) -> List[PhraseBlockRule]:
        return self.preferences.phrases

    def category_state(self, label: str) -> CategoryState:
        return self.board.state(label)

    def is_seen(self, item: FeedItem) -> bool:
        return filter_engine.is_seen(item, self._previous_load)

    def snapshot(self) -> PreferenceSnapshot:
        return PreferenceSnapshot(
            blocked_categories=tuple(self.board.blocked),
            blocked_phrases=tuple(self.preferences.phrases),
        )

    def _set_state(self, state: LoadState) -> None:
        self._state = state
        self.events.emit(STATE_CHANGED, state=state, error=self._error)

    # Load cycle

    async def start(self) -> None:
        """Initial load: rules and feed are requested together, and the
        feed waits for the rules before filtering."""
        preferences_task = self.reload_preferences_in_background()
        await self.load(reset_visit_time=True)
        await preferences_task

    def reload_preferences_in_background(self) -> "asyncio.Task[PreferenceSnapshot]":
        """Start a rules reload without waiting for it; load() waits instead."""
        self._preferences_task = asyncio.create_task(self.reload_preferences())
        return self._preferences_task

    async def reload_preferences(self) -> PreferenceSnapshot:
        """Reload the rules for the current identity (e.g. after login)."""
        await self.preferences.load(self.identity())
        self.refilter()
        return self.snapshot()

    async def load(self, reset_visit_time: bool = False) -> bool:
        """Run one fetch cycle.

        Args:
            reset_visit_time: Recompute the seen-cutoff before fetching and
                commit a new visit time afterwards

        Returns:
            False if the call was dropped because a load was already running
        """
        if self._state is LoadState.LOADING:
            logger.info("Feed load already in progress, dropping request")
            return False

        self._error = ""
        self._set_state(LoadState.LOADING)

        try:
            if reset_visit_time:
                self._previous_load = await self.tracker.get_previous_load()

            if not await self.preferences.wait_ready(self.ready_timeout):
                logger.warning(
                    f"Preferences not ready after {self.ready_timeout}s, filtering with cached rules"
                )

            self.fetch_count += 1
            feed = await self.fetch_feed(self.feed_url)
        except Exception as e:
            logger.error(f"Error fetching feed {self.feed_url}: {e}", exc_info=True)
            self._error = "Error fetching RSS feed. Please try again later."
            self._set_state(LoadState.FAILED)
            return True

        try:
            self._raw = feed
            self.cache.set(CacheKeys.FEED_DATA, feed.to_dict())
            self.refilter()

            if reset_visit_time:
                await self.tracker.commit_this_load()
        except Exception as e:
            # The state must not stay at LOADING
            logger.error(f"Error processing feed {self.feed_url}: {e}", exc_info=True)
            self._error = "Error processing RSS feed. Please try again later."
            self._set_state(LoadState.FAILED)
            raise

        self._set_state(LoadState.READY)
        logger.info(
            f"Feed loaded: {self._stats.visible_items} of {self._stats.total_items} items visible"
        )
        return True

    def restore_cached_feed(self) -> bool:
        """Rebuild the view from the last fetched feed kept in the local cache.

        Returns:
            True if a cached feed was found
        """
        data = self.cache.get(CacheKeys.FEED_DATA)
        if not isinstance(data, dict):
            return False

        self._raw = Feed.from_dict(data)
        self.refilter()
        if self._state is LoadState.IDLE:
            self._set_state(LoadState.READY)
        return True

    def refilter(self) -> None:
        """Re-derive the view from the already fetched feed, without fetching."""
        if self.preferences.generation != self._board_generation:
            self.board.reset(self.preferences.categories)
            self._board_generation = self.preferences.generation

        if self._raw is None:
            return

        result = filter_engine.apply_filters(self._raw.items, self.snapshot(), self._previous_load)
        self._view = self._raw.with_items(result.items)
        self._stats = result.stats
        self.events.emit(VIEW_UPDATED, stats=result.stats)

    # Categories

    def stage(self, category: str) -> bool:
        staged = self.board.stage(category)
        if staged:
            self.events.emit(RULES_CHANGED, staged=self.board.staged)
        return staged

    def toggle_staged(self, category: str) -> CategoryState:
        state = self.board.toggle_staged(category)
        self.events.emit(RULES_CHANGED, staged=self.board.staged)
        return state

    def cancel_staged(self) -> List[str]:
        cancelled = self.board.cancel_staged()
        self.events.emit(RULES_CHANGED, staged=self.board.staged)
        return cancelled

    async def _settle_preferences(self) -> None:
        """Let an in-flight rules reload land before the board is edited.

        Otherwise the reload would re-seed the board afterwards and drop
        the edit. Staged labels survive the re-seed.
        """
        if not self.preferences.is_ready:
            await self.preferences.wait_ready(self.ready_timeout)
        self.refilter()

    async def _save_categories(self) -> None:
        self.refilter()
        self.events.emit(RULES_CHANGED, blocked=self.board.blocked)
        await self.preferences.save_categories(self.identity(), self.board.blocked)

    async def apply_staged(self) -> List[str]:
        """Block every staged category, re-filter and save."""
        await self._settle_preferences()
        applied = self.board.apply_staged()
        if applied:
            await self._save_categories()
        return applied

    async def unblock_category(self, category: str) -> bool:
        await self._settle_preferences()
        removed = self.board.unblock(category)
        if removed:
            await self._save_categories()
        return removed

    async def clear_categories(self) -> List[str]:
        await self._settle_preferences()
        cleared = self.board.clear_blocked()
        await self._save_categories()
        return cleared

    # Phrases

    def _find_phrase(self, phrase_id: str) -> Optional[PhraseBlockRule]:
        for rule in self.preferences.phrases:
            if rule.id == phrase_id:
                return rule
        return None

    async def add_phrase(
        self,
        phrase: str,
        match_title: bool = True,
        match_content: bool = True,
        case_sensitive: bool = False,
    ) -> PhraseBlockRule:
        """Create a phrase rule and apply it to the current view.

        Raises:
            ValueError: If the rule is invalid
        """
        user_id = self.identity()
        rule = new_phrase_rule(phrase, user_id, match_title, match_content, case_sensitive)
        try:
            return await self.preferences.save_phrase(user_id, rule)
        finally:
            self.refilter()
            self.events.emit(RULES_CHANGED, phrases=len(self.preferences.phrases))

    async def update_phrase(
        self,
        phrase_id: str,
        phrase: Optional[str] = None,
        match_title: Optional[bool] = None,
        match_content: Optional[bool] = None,
        case_sensitive: Optional[bool] = None,
    ) -> Optional[PhraseBlockRule]:
        """Change an existing rule; None if no rule has that id."""
        current = self._find_phrase(phrase_id)
        if current is None:
            return None

        # Validate through the same path as new rules
        checked = new_phrase_rule(
            phrase if phrase is not None else current.phrase,
            current.owner_id,
            current.match_title if match_title is None else match_title,
            current.match_content if match_content is None else match_content,
            current.case_sensitive if case_sensitive is None else case_sensitive,
        )
        rule = PhraseBlockRule(
            id=current.id,
            owner_id=current.owner_id,
            phrase=checked.phrase,
            match_title=checked.match_title,
            match_content=checked.match_content,
            case_sensitive=checked.case_sensitive,
            created_at=current.created_at,
            updated_at=current.updated_at,
        )

        try:
            return await self.preferences.update_phrase(self.identity(), rule)
        finally:
            self.refilter()
            self.events.emit(RULES_CHANGED, phrases=len(self.preferences.phrases))

    async def remove_phrase(self, phrase_id: str) -> bool:
        if self._find_phrase(phrase_id) is None:
            return False
        try:
            await self.preferences.delete_phrase(self.identity(), phrase_id)
        finally:
            self.refilter()
            self.events.emit(RULES_CHANGED, phrases=len(self.preferences.phrases))
        return True

    async def clear_phrases(self) -> None:
        try:
            await self.preferences.clear_phrases(self.identity())
        finally:
            self.refilter()
            self.events.emit(RULES_CHANGED, phrases=0)


# Process-wide orchestrator used by the MCP tools
_orchestrator: Optional[FeedOrchestrator] = None


def create_orchestrator(
    config: Optional[ServerConfig] = None,
    events: Optional[FeedEvents] = None,
) -> FeedOrchestrator:
    """Wire an orchestrator from configuration."""
    if config is None:
        config = get_config()

    cache = LocalCache(config.cache_path)

    def identity() -> Optional[str]:
        return config.user_id

    return FeedOrchestrator(
        feed_url=config.feed_url,
        preferences=PreferenceStoreClient(cache),
        tracker=VisitTimeTracker(cache, identity),
        fetch_feed=functools.partial(parse_feed, timeout=config.fetch_timeout),
        identity=identity,
        cache=cache,
        events=events,
        ready_timeout=config.ready_timeout,
    )


async def get_orchestrator() -> FeedOrchestrator:
    """Get or create the singleton orchestrator.

    First use restores the cached view and starts loading the rules.
    Fetching and committing the visit time is left to the caller.
    """
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = create_orchestrator()
        _orchestrator.restore_cached_feed()
        _orchestrator.reload_preferences_in_background()

    return _orchestrator
