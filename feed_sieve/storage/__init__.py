"""Storage layer for feed_sieve."""

from .database import (
    get_database,
    init_database,
    close_database,
    fetch_blocked_categories,
    save_blocked_categories,
    fetch_blocked_phrases,
    insert_blocked_phrase,
    update_blocked_phrase,
    delete_blocked_phrase,
    clear_blocked_phrases,
    get_last_visit,
    upsert_last_visit,
)
from .local_cache import CacheKeys, LocalCache

__all__ = [
    "get_database",
    "init_database",
    "close_database",
    "fetch_blocked_categories",
    "save_blocked_categories",
    "fetch_blocked_phrases",
    "insert_blocked_phrase",
    "update_blocked_phrase",
    "delete_blocked_phrase",
    "clear_blocked_phrases",
    "get_last_visit",
    "upsert_last_visit",
    "CacheKeys",
    "LocalCache",
]
