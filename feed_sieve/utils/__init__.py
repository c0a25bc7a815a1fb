"""Utility helpers for feed_sieve."""
