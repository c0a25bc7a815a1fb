"""Unit tests for environment-driven configuration."""

from pathlib import Path

from feed_sieve.config import DEFAULT_FEED_URL, load_config


def test_defaults(monkeypatch):
    for name in ("FEED_SIEVE_FEED_URL", "FEED_SIEVE_USER_ID", "FEED_SIEVE_CACHE_PATH"):
        monkeypatch.delenv(name, raising=False)

    config = load_config()

    assert config.feed_url == DEFAULT_FEED_URL
    assert config.user_id is None
    assert config.cache_path is not None


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("FEED_SIEVE_FEED_URL", "https://example.com/rss")
    monkeypatch.setenv("FEED_SIEVE_USER_ID", "user-1")
    monkeypatch.setenv("FEED_SIEVE_DB_PATH", str(tmp_path / "store.db"))
    monkeypatch.setenv("FEED_SIEVE_LOG_LEVEL", "debug")
    monkeypatch.setenv("FEED_SIEVE_READY_TIMEOUT", "2.5")

    config = load_config()

    assert config.feed_url == "https://example.com/rss"
    assert config.user_id == "user-1"
    assert config.db_path == Path(tmp_path / "store.db")
    assert config.log_level == "DEBUG"
    assert config.ready_timeout == 2.5


def test_empty_cache_path_disables_cache(monkeypatch):
    monkeypatch.setenv("FEED_SIEVE_CACHE_PATH", "")

    assert load_config().cache_path is None


def test_bad_timeout_falls_back(monkeypatch):
    monkeypatch.setenv("FEED_SIEVE_FETCH_TIMEOUT", "soon")

    assert load_config().fetch_timeout == 30.0
