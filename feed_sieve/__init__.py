"""feed_sieve: a single-feed RSS reader with category and phrase filtering."""

__version__ = "0.1.0"
