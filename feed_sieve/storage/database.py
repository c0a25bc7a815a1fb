"""Remote preference store for feed_sieve.

This module provides async SQLite operations for the per-user rows that
follow a signed-in reader across devices: blocked categories (one row
per user), blocked phrases (one row per rule) and the last visit time
(one row per user).
Database location: ~/.feed_sieve/feed_sieve.db (or FEED_SIEVE_DB_PATH env var)
"""

import json
import os
import uuid
import aiosqlite
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from feed_sieve.config import get_config
from feed_sieve.models.schemas import PhraseBlockRule
from feed_sieve.utils.dates import from_iso, to_iso, utc_now


def _get_db_path() -> Path:
    """Get the database path, respecting FEED_SIEVE_DB_PATH env var for testing."""
    env_path = os.environ.get("FEED_SIEVE_DB_PATH")
    if env_path:
        return Path(env_path)
    return get_config().db_path


# Singleton connection
_db_connection: Optional[aiosqlite.Connection] = None


async def get_database() -> aiosqlite.Connection:
    """Get or create a singleton database connection.

    Returns:
        Active database connection
    """
    global _db_connection

    if _db_connection is None:
        db_path = _get_db_path()
        # Ensure directory exists
        db_path.parent.mkdir(parents=True, exist_ok=True)

        _db_connection = await aiosqlite.connect(db_path)
        _db_connection.row_factory = aiosqlite.Row
        await init_database(_db_connection)

    return _db_connection


async def init_database(db: Optional[aiosqlite.Connection] = None) -> None:
    """Initialize database tables if they don't exist.

    Args:
        db: Optional database connection (uses singleton if not provided)
    """
    if db is None:
        db = await get_database()

    await db.execute("""
        CREATE TABLE IF NOT EXISTS blocked_categories (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            categories TEXT NOT NULL DEFAULT '[]',
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS blocked_phrases (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            phrase TEXT NOT NULL,
            match_title BOOLEAN NOT NULL DEFAULT TRUE,
            match_content BOOLEAN NOT NULL DEFAULT TRUE,
            case_sensitive BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS last_visit (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            last_visited_at TIMESTAMP NOT NULL,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)

    # Create indexes for per-user lookups
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_blocked_categories_user_id ON blocked_categories(user_id)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_blocked_phrases_user_id ON blocked_phrases(user_id)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_last_visit_user_id ON last_visit(user_id)
    """)

    await db.commit()


def _new_id() -> str:
    return str(uuid.uuid4())


def _row_to_phrase(row: aiosqlite.Row) -> PhraseBlockRule:
    return PhraseBlockRule(
        id=row["id"],
        owner_id=row["user_id"],
        phrase=row["phrase"],
        match_title=bool(row["match_title"]),
        match_content=bool(row["match_content"]),
        case_sensitive=bool(row["case_sensitive"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


async def fetch_blocked_categories(user_id: str) -> Optional[List[str]]:
    """Get the blocked categories stored for a user.

    Args:
        user_id: Opaque user identifier

    Returns:
        List of category labels, or None if the user has no row yet
    """
    db = await get_database()

    cursor = await db.execute(
        "SELECT categories FROM blocked_categories WHERE user_id = ? LIMIT 1",
        (user_id,),
    )
    row = await cursor.fetchone()

    if row is None:
        return None

    return list(json.loads(row["categories"] or "[]"))


async def save_blocked_categories(user_id: str, categories: List[str]) -> None:
    """Upsert the blocked categories row for a user.

    Updates the existing row if one is found for the user, otherwise
    inserts a new one.

    Args:
        user_id: Opaque user identifier
        categories: Full list of blocked category labels
    """
    db = await get_database()
    now = to_iso(utc_now())
    payload = json.dumps(list(categories))

    cursor = await db.execute(
        "SELECT id FROM blocked_categories WHERE user_id = ? LIMIT 1",
        (user_id,),
    )
    row = await cursor.fetchone()

    if row is not None:
        await db.execute(
            "UPDATE blocked_categories SET categories = ?, updated_at = ? WHERE id = ?",
            (payload, now, row["id"]),
        )
    else:
        await db.execute(
            """
            INSERT INTO blocked_categories (id, user_id, categories, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (_new_id(), user_id, payload, now, now),
        )

    await db.commit()


async def fetch_blocked_phrases(user_id: str) -> List[PhraseBlockRule]:
    """List a user's blocked phrases, newest first.

    Args:
        user_id: Opaque user identifier

    Returns:
        List of PhraseBlockRule objects
    """
    db = await get_database()

    cursor = await db.execute(
        """
        SELECT * FROM blocked_phrases
        WHERE user_id = ?
        ORDER BY created_at DESC, rowid DESC
        """,
        (user_id,),
    )

    phrases = []
    async for row in cursor:
        phrases.append(_row_to_phrase(row))

    return phrases


async def insert_blocked_phrase(user_id: str, rule: PhraseBlockRule) -> PhraseBlockRule:
    """Insert a phrase rule for a user.

    The store assigns the row id; any client-generated id on the rule
    is replaced.

    Args:
        user_id: Opaque user identifier
        rule: Rule to store

    Returns:
        The stored rule with its store-assigned id and timestamps
    """
    db = await get_database()
    now = utc_now()
    created_at = rule.created_at or now

    stored = PhraseBlockRule(
        id=_new_id(),
        owner_id=user_id,
        phrase=rule.phrase,
        match_title=rule.match_title,
        match_content=rule.match_content,
        case_sensitive=rule.case_sensitive,
        created_at=created_at,
        updated_at=now,
    )

    await db.execute(
        """
        INSERT INTO blocked_phrases
            (id, user_id, phrase, match_title, match_content, case_sensitive, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            stored.id,
            user_id,
            stored.phrase,
            stored.match_title,
            stored.match_content,
            stored.case_sensitive,
            to_iso(created_at),
            to_iso(now),
        ),
    )
    await db.commit()

    return stored


async def update_blocked_phrase(user_id: str, rule: PhraseBlockRule) -> Optional[PhraseBlockRule]:
    """Update a phrase rule owned by a user.

    Args:
        user_id: Opaque user identifier
        rule: Rule carrying the id to update and the new values

    Returns:
        Updated rule if found, None otherwise
    """
    db = await get_database()

    await db.execute(
        """
        UPDATE blocked_phrases
        SET phrase = ?, match_title = ?, match_content = ?, case_sensitive = ?, updated_at = ?
        WHERE id = ? AND user_id = ?
        """,
        (
            rule.phrase,
            rule.match_title,
            rule.match_content,
            rule.case_sensitive,
            to_iso(utc_now()),
            rule.id,
            user_id,
        ),
    )
    await db.commit()

    cursor = await db.execute(
        "SELECT * FROM blocked_phrases WHERE id = ? AND user_id = ?",
        (rule.id, user_id),
    )
    row = await cursor.fetchone()

    if row is None:
        return None

    return _row_to_phrase(row)


async def delete_blocked_phrase(user_id: str, phrase_id: str) -> bool:
    """Delete one phrase rule owned by a user.

    Returns:
        True if a row was deleted
    """
    db = await get_database()

    cursor = await db.execute(
        "DELETE FROM blocked_phrases WHERE id = ? AND user_id = ?",
        (phrase_id, user_id),
    )
    await db.commit()

    return cursor.rowcount > 0


async def clear_blocked_phrases(user_id: str) -> int:
    """Delete every phrase rule owned by a user.

    Returns:
        Number of rules deleted
    """
    db = await get_database()

    cursor = await db.execute(
        "DELETE FROM blocked_phrases WHERE user_id = ?",
        (user_id,),
    )
    await db.commit()

    return cursor.rowcount


async def get_last_visit(user_id: str) -> Optional[datetime]:
    """Get the most recent last_visited_at recorded for a user."""
    db = await get_database()

    cursor = await db.execute(
        """
        SELECT last_visited_at FROM last_visit
        WHERE user_id = ?
        ORDER BY last_visited_at DESC
        LIMIT 1
        """,
        (user_id,),
    )
    row = await cursor.fetchone()

    if row is None:
        return None

    return from_iso(row["last_visited_at"])


async def upsert_last_visit(user_id: str, visited_at: datetime) -> None:
    """Record visited_at as the user's last visit, creating the row if needed."""
    db = await get_database()
    now = to_iso(utc_now())

    cursor = await db.execute(
        "SELECT id FROM last_visit WHERE user_id = ? LIMIT 1",
        (user_id,),
    )
    row = await cursor.fetchone()

    if row is not None:
        await db.execute(
            "UPDATE last_visit SET last_visited_at = ?, updated_at = ? WHERE id = ?",
            (to_iso(visited_at), now, row["id"]),
        )
    else:
        await db.execute(
            """
            INSERT INTO last_visit (id, user_id, last_visited_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (_new_id(), user_id, to_iso(visited_at), now, now),
        )

    await db.commit()


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection

    if _db_connection is not None:
        await _db_connection.close()
        _db_connection = None
