"""Preference store client.

Keeps the blocked categories and blocked phrases convergent between the
remote per-user store and the local cache:

- anonymous readers only ever touch the local cache;
- signed-in readers prefer the remote copy, fall back to the local one
  when the store is unreachable, and push local-only rules up once on
  their first login (when the remote copy is still empty).

Reads degrade silently to the local cache. Writes always update the
local cache and re-raise remote failures so the caller can report them.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import List, Optional

from feed_sieve.models.schemas import PhraseBlockRule, PreferenceSnapshot
from feed_sieve.storage import database
from feed_sieve.storage.local_cache import CacheKeys, LocalCache
from feed_sieve.utils.dates import utc_now


logger = logging.getLogger(__name__)


def generate_local_id() -> str:
    """Client-side id for a phrase rule that has no store row yet."""
    return f"local-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def new_phrase_rule(
    phrase: str,
    owner_id: Optional[str] = None,
    match_title: bool = True,
    match_content: bool = True,
    case_sensitive: bool = False,
) -> PhraseBlockRule:
    """Build a validated rule with a local id.

    Raises:
        ValueError: If the phrase is blank or the rule targets neither
            title nor content
    """
    phrase = (phrase or "").strip()
    if not phrase:
        raise ValueError("Blocked phrase must not be empty")
    if not match_title and not match_content:
        raise ValueError("Blocked phrase must match the title, the content, or both")

    now = utc_now()
    return PhraseBlockRule(
        id=generate_local_id(),
        owner_id=owner_id,
        phrase=phrase,
        match_title=match_title,
        match_content=match_content,
        case_sensitive=case_sensitive,
        created_at=now,
        updated_at=now,
    )


def _dedupe(categories: List[str]) -> List[str]:
    return list(dict.fromkeys(categories))


class PreferenceStoreClient:
    """Reconciles remote and locally cached blocking rules.

    The client also holds the current in-memory rule sets and a readiness
    signal that is set once each load completes.
    """

    def __init__(self, cache: LocalCache):
        self.cache = cache
        # Seeded from the local cache so there is something to filter
        # with even before the first load finishes
        self._categories: List[str] = self._local_categories()
        self._phrases: List[PhraseBlockRule] = self._local_phrases()
        self._ready = asyncio.Event()
        # Bumped after every completed load so holders of derived state
        # know to re-seed
        self.generation = 0

    # Local cache helpers

    def _local_categories(self) -> List[str]:
        value = self.cache.get(CacheKeys.BLOCKED_CATEGORIES, [])
        if not isinstance(value, list):
            return []
        return [str(c) for c in value]

    def _local_phrases(self) -> List[PhraseBlockRule]:
        value = self.cache.get(CacheKeys.BLOCKED_PHRASES, [])
        if not isinstance(value, list):
            return []

        phrases = []
        for entry in value:
            if isinstance(entry, dict) and entry.get("phrase"):
                phrases.append(PhraseBlockRule.from_dict(entry))
        return phrases

    def _store_local_categories(self, categories: List[str]) -> None:
        self.cache.set(CacheKeys.BLOCKED_CATEGORIES, list(categories))

    def _store_local_phrases(self, phrases: List[PhraseBlockRule]) -> None:
        self.cache.set(CacheKeys.BLOCKED_PHRASES, [p.to_dict() for p in phrases])

    # Readiness

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current load to finish.

        Returns:
            True if ready, False if the timeout expired first
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def load(self, user_id: Optional[str] = None) -> PreferenceSnapshot:
        """Load both rule sets for a user and signal readiness."""
        self._ready.clear()
        try:
            self._categories = await self.load_categories(user_id)
            self._phrases = await self.load_phrases(user_id)
        finally:
            self.generation += 1
            self._ready.set()

        logger.info(
            f"Preferences loaded for {user_id or 'anonymous'}: "
            f"{len(self._categories)} categories, {len(self._phrases)} phrases"
        )
        return self.snapshot()

    def snapshot(self) -> PreferenceSnapshot:
        return PreferenceSnapshot(
            blocked_categories=tuple(self._categories),
            blocked_phrases=tuple(self._phrases),
        )

    @property
    def categories(self) -> List[str]:
        return list(self._categories)

    @property
    def phrases(self) -> List[PhraseBlockRule]:
        return list(self._phrases)

    # Categories

    async def load_categories(self, user_id: Optional[str] = None) -> List[str]:
        """Get the latest blocked categories, preferring the remote copy.

        Args:
            user_id: Signed-in user, or None for anonymous use

        Returns:
            List of blocked category labels
        """
        local_categories = self._local_categories()

        if not user_id:
            return local_categories

        try:
            remote_categories = await database.fetch_blocked_categories(user_id)
        except Exception as e:
            logger.error(f"Error loading blocked categories for {user_id}, using local cache: {e}")
            return local_categories

        if not remote_categories and local_categories:
            # First login with local-only rules: push them up once
            logger.info(f"Migrating {len(local_categories)} local blocked categories for {user_id}")
            try:
                await database.save_blocked_categories(user_id, local_categories)
            except Exception as e:
                logger.error(f"Error migrating blocked categories for {user_id}: {e}")
            return local_categories

        remote_categories = remote_categories or []
        self._store_local_categories(remote_categories)
        return remote_categories

    async def save_categories(self, user_id: Optional[str], categories: List[str]) -> None:
        """Write-through save of the full blocked category list.

        Raises:
            Exception: Whatever the remote store raised, after the local
                cache has been updated
        """
        categories = _dedupe(list(categories))
        self._categories = categories
        self._store_local_categories(categories)

        if not user_id:
            return

        try:
            await database.save_blocked_categories(user_id, categories)
        except Exception as e:
            logger.error(f"Error saving blocked categories for {user_id}: {e}")
            raise

    # Phrases

    async def load_phrases(self, user_id: Optional[str] = None) -> List[PhraseBlockRule]:
        """Get the latest blocked phrases, preferring the remote copy.

        Migration from the local cache inserts rules one at a time and
        caches them back with their store-assigned ids.
        """
        local_phrases = self._local_phrases()

        if not user_id:
            return local_phrases

        try:
            remote_phrases = await database.fetch_blocked_phrases(user_id)
        except Exception as e:
            logger.error(f"Error loading blocked phrases for {user_id}, using local cache: {e}")
            return local_phrases

        if not remote_phrases and local_phrases:
            logger.info(f"Migrating {len(local_phrases)} local blocked phrases for {user_id}")
            migrated = []
            for rule in local_phrases:
                try:
                    migrated.append(await database.insert_blocked_phrase(user_id, rule))
                except Exception as e:
                    logger.error(f"Error migrating blocked phrase '{rule.phrase}': {e}")
                    migrated.append(rule)
            self._store_local_phrases(migrated)
            return migrated

        self._store_local_phrases(remote_phrases)
        return remote_phrases

    async def save_phrase(self, user_id: Optional[str], rule: PhraseBlockRule) -> PhraseBlockRule:
        """Add a phrase rule.

        Returns:
            The rule as stored (with a remote id for signed-in users)
        """
        stored = replace(rule, owner_id=user_id)
        error = None

        if user_id:
            try:
                stored = await database.insert_blocked_phrase(user_id, rule)
            except Exception as e:
                logger.error(f"Error saving blocked phrase for {user_id}: {e}")
                error = e

        self._phrases = [stored] + [p for p in self._phrases if p.id != stored.id]
        self._store_local_phrases(self._phrases)

        if error is not None:
            raise error
        return stored

    async def update_phrase(self, user_id: Optional[str], rule: PhraseBlockRule) -> PhraseBlockRule:
        """Replace an existing phrase rule (matched by id)."""
        updated = replace(rule, updated_at=utc_now())
        error = None

        if user_id and not rule.is_local:
            try:
                result = await database.update_blocked_phrase(user_id, rule)
                if result is not None:
                    updated = result
            except Exception as e:
                logger.error(f"Error updating blocked phrase {rule.id}: {e}")
                error = e

        self._phrases = [updated if p.id == rule.id else p for p in self._phrases]
        self._store_local_phrases(self._phrases)

        if error is not None:
            raise error
        return updated

    async def delete_phrase(self, user_id: Optional[str], phrase_id: str) -> None:
        error = None

        if user_id:
            try:
                await database.delete_blocked_phrase(user_id, phrase_id)
            except Exception as e:
                logger.error(f"Error deleting blocked phrase {phrase_id}: {e}")
                error = e

        self._phrases = [p for p in self._phrases if p.id != phrase_id]
        self._store_local_phrases(self._phrases)

        if error is not None:
            raise error

    async def clear_phrases(self, user_id: Optional[str]) -> None:
        error = None

        if user_id:
            try:
                await database.clear_blocked_phrases(user_id)
            except Exception as e:
                logger.error(f"Error clearing blocked phrases for {user_id}: {e}")
                error = e

        self._phrases = []
        self._store_local_phrases([])

        if error is not None:
            raise error
