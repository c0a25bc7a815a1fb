"""Visit-time tracker.

Two timestamps decide what the reader has already seen:

- this_load: when the latest successful fetch completed on this device;
- previous_load: the seen-cutoff for the current session, computed as
  the later of this device's this_load and the remote last_visited_at.

Comparing the remote visit marker against the local this_load (rather
than a local visit marker) lets repeated reloads on one device advance
the cutoff even before any remote write has succeeded.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from feed_sieve.models.schemas import VisitTimestamps
from feed_sieve.storage import database
from feed_sieve.storage.local_cache import CacheKeys, LocalCache
from feed_sieve.utils.dates import from_iso, to_iso, utc_now


logger = logging.getLogger(__name__)


class VisitTimeTracker:
    """Reads and commits the dual visit timestamps.

    Args:
        cache: Local cache holding both timestamps
        identity: Callable returning the signed-in user id, or None
    """

    def __init__(self, cache: LocalCache, identity: Callable[[], Optional[str]]):
        self.cache = cache
        self.identity = identity

    def _local(self, key: str) -> Optional[datetime]:
        return from_iso(self.cache.get(key))

    def cached_previous_load(self) -> Optional[datetime]:
        """The last computed seen-cutoff, without touching the remote store."""
        return self._local(CacheKeys.PREVIOUS_LOAD)

    def cached_this_load(self) -> Optional[datetime]:
        return self._local(CacheKeys.THIS_LOAD)

    def timestamps(self) -> VisitTimestamps:
        return VisitTimestamps(
            previous_load=self.cached_previous_load(),
            this_load=self.cached_this_load(),
        )

    async def _remote_last_visit(self, user_id: str) -> Optional[datetime]:
        try:
            return await database.get_last_visit(user_id)
        except Exception as e:
            logger.error(f"Error reading last visit for {user_id}: {e}")
            return None

    async def get_previous_load(self) -> Optional[datetime]:
        """Compute the seen-cutoff as max(remote last visit, local this_load).

        Must run before commit_this_load within one fetch cycle.

        Returns:
            The cutoff, or None if neither side has a record
        """
        user_id = self.identity()

        remote_visit = await self._remote_last_visit(user_id) if user_id else None
        local_this_load = self.cached_this_load()

        if remote_visit and local_this_load:
            previous_load = max(remote_visit, local_this_load)
        else:
            previous_load = remote_visit or local_this_load

        if previous_load is not None:
            self.cache.set(CacheKeys.PREVIOUS_LOAD, to_iso(previous_load))

        logger.debug(
            f"previous_load={previous_load} (remote={remote_visit}, local this_load={local_this_load})"
        )
        return previous_load

    async def commit_this_load(self, now: Optional[datetime] = None) -> datetime:
        """Record that a fetch cycle completed.

        Updates the local this_load and, for signed-in users, the remote
        last visit. The remote write is best effort: failures are logged.
        """
        if now is None:
            now = utc_now()

        self.cache.set(CacheKeys.THIS_LOAD, to_iso(now))

        user_id = self.identity()
        if user_id:
            try:
                await database.upsert_last_visit(user_id, now)
            except Exception as e:
                logger.warning(f"Could not sync last visit for {user_id}: {e}")

        return now
