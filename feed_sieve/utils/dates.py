"""Date helpers for feed timestamps and visit times."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Feeds and old cache entries sometimes carry naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_pub_date(value: Any) -> Optional[datetime]:
    """Parse a feed-supplied publish date.

    Accepts RFC 2822 strings (RSS), ISO-8601 strings (Atom) and the
    time tuples feedparser produces.

    Args:
        value: Raw date value from the feed

    Returns:
        Timezone-aware datetime, or None if the value can't be parsed
    """
    if not value:
        return None

    # If it's already a time struct (from feedparser)
    if isinstance(value, tuple):
        try:
            return datetime(*value[:6], tzinfo=timezone.utc)
        except (ValueError, TypeError):
            return None

    if not isinstance(value, str):
        return None

    # Try RFC 2822 format (common in RSS)
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (ValueError, TypeError, IndexError):
        pass

    # Try ISO format
    try:
        return _as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def to_iso(value: datetime) -> str:
    # Normalised to UTC so stored strings sort chronologically
    return _as_utc(value).astimezone(timezone.utc).isoformat()


def from_iso(value: Any) -> Optional[datetime]:
    """Read back a stored ISO timestamp; anything unreadable is None."""
    if not value or not isinstance(value, str):
        return None
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_relative_time(value: datetime, now: Optional[datetime] = None) -> str:
    """Format a past instant as e.g. "2 hours and 5 minutes ago"."""
    if now is None:
        now = utc_now()

    diff_minutes = int((_as_utc(now) - _as_utc(value)).total_seconds() // 60)
    hours, minutes = divmod(diff_minutes, 60)

    if hours == 0:
        return f"{_plural(minutes, 'minute')} ago"
    if minutes == 0:
        return f"{_plural(hours, 'hour')} ago"
    return f"{_plural(hours, 'hour')} and {_plural(minutes, 'minute')} ago"
