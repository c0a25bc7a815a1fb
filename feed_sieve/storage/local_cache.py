"""Local cache for feed_sieve.

A small key/value store persisted as one JSON document, used for the
anonymous copy of the blocking rules and for the visit timestamps.
Cache location: ~/.feed_sieve/cache.json (or FEED_SIEVE_CACHE_PATH env var)

The cache never raises. A missing, empty or corrupt entry reads back as
the caller's default, and write failures are logged and dropped.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


class CacheKeys:
    """Logical key namespace for everything the reader keeps locally."""

    FEED_DATA = "rssViewerFeedData"
    BLOCKED_CATEGORIES = "rssViewerBlockedCategories"
    BLOCKED_PHRASES = "rssViewerBlockedPhrases"
    PREVIOUS_LOAD = "previous_rss_load"
    THIS_LOAD = "this_rss_load"


class LocalCache:
    """JSON-backed key/value cache.

    Args:
        path: File holding the cache document, or None when persistent
            storage is unavailable (every call then no-ops)
    """

    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path is not None else None

    @property
    def available(self) -> bool:
        return self.path is not None

    def _read(self) -> Dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error reading local cache {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Local cache {self.path} is not a JSON object, ignoring it")
            return {}

        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file then swap it in, so a crash never
        # leaves a half-written document behind
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value, returning default if it's absent or unreadable."""
        if self.path is None:
            return default

        raw = self._read().get(key)
        if not raw:
            return default

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Error retrieving {key} from local cache: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serialisable value under key."""
        if self.path is None:
            return

        try:
            data = self._read()
            data[key] = json.dumps(value)
            self._write(data)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving {key} to local cache: {e}")

    def remove(self, key: str) -> None:
        if self.path is None:
            return

        try:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
        except OSError as e:
            logger.error(f"Error removing {key} from local cache: {e}")
