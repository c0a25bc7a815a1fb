"""Configuration for feed_sieve.

Settings come from environment variables so the same build can run as an
anonymous local reader or as a signed-in user against a shared store.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_FEED_URL = "https://feeds.arstechnica.com/arstechnica/index"
DEFAULT_HOME = Path.home() / ".feed_sieve"


@dataclass
class ServerConfig:
    """Runtime configuration for the server and the feed engine."""

    name: str = "feed_sieve"
    log_level: str = "INFO"
    feed_url: str = DEFAULT_FEED_URL
    db_path: Path = DEFAULT_HOME / "feed_sieve.db"
    # None means local storage is unavailable and the cache no-ops
    cache_path: Optional[Path] = DEFAULT_HOME / "cache.json"
    user_id: Optional[str] = None
    ready_timeout: float = 10.0
    fetch_timeout: float = 30.0


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def load_config() -> ServerConfig:
    """Build a ServerConfig from FEED_SIEVE_* environment variables."""
    config = ServerConfig()

    config.name = os.environ.get("FEED_SIEVE_NAME", config.name)
    config.log_level = os.environ.get("FEED_SIEVE_LOG_LEVEL", config.log_level).upper()
    config.feed_url = os.environ.get("FEED_SIEVE_FEED_URL", config.feed_url)

    db_path = os.environ.get("FEED_SIEVE_DB_PATH")
    if db_path:
        config.db_path = Path(db_path)

    if "FEED_SIEVE_CACHE_PATH" in os.environ:
        cache_path = os.environ["FEED_SIEVE_CACHE_PATH"]
        config.cache_path = Path(cache_path) if cache_path else None

    config.user_id = os.environ.get("FEED_SIEVE_USER_ID") or None
    config.ready_timeout = _env_float("FEED_SIEVE_READY_TIMEOUT", config.ready_timeout)
    config.fetch_timeout = _env_float("FEED_SIEVE_FETCH_TIMEOUT", config.fetch_timeout)

    return config


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get or create the process-wide configuration."""
    global _config

    if _config is None:
        _config = load_config()

    return _config
