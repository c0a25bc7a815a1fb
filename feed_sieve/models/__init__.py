"""Data models for feed_sieve."""
