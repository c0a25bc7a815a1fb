"""Shared fixtures for feed_sieve tests."""

from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from feed_sieve.storage.database import init_database
from feed_sieve.storage.local_cache import LocalCache


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def in_memory_db():
    """Create an in-memory database for testing."""
    db = await aiosqlite.connect(":memory:")
    db.row_factory = aiosqlite.Row
    await init_database(db)

    # Patch get_database to return our in-memory connection
    with patch("feed_sieve.storage.database.get_database", AsyncMock(return_value=db)):
        yield db

    await db.close()


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "cache.json")
