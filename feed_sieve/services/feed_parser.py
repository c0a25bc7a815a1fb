"""Feed parser service.

This module fetches an RSS/Atom feed and turns it into a Feed of
FeedItems. It is the only place that talks to the network.
"""

import logging

import httpx
import feedparser
from bs4 import BeautifulSoup
from typing import List, Optional

from feed_sieve.models.schemas import Feed, FeedItem
from feed_sieve.utils.dates import parse_pub_date


logger = logging.getLogger(__name__)


class FeedFetchError(Exception):
    """Raised when a feed can't be fetched or parsed."""


async def parse_feed(feed_url: str, timeout: float = 30.0) -> Feed:
    """Fetch and parse an RSS/Atom feed.

    Args:
        feed_url: URL of the feed to parse
        timeout: HTTP timeout in seconds

    Returns:
        Feed with items in feed order

    Raises:
        FeedFetchError: If the request fails or the body isn't a feed
    """
    logger.info(f"Parsing feed: {feed_url}")

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": "FeedSieve/1.0 (RSS Feed Reader)"},
    ) as client:
        try:
            response = await client.get(feed_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch feed: {e}")
            raise FeedFetchError(f"Failed to fetch feed {feed_url}: {e}") from e

    return parse_feed_text(response.text)


def parse_feed_text(text: str) -> Feed:
    """Parse a feed document that has already been downloaded.

    Raises:
        FeedFetchError: If feedparser can't make sense of the document
    """
    parsed = feedparser.parse(text)

    if parsed.bozo and not parsed.entries:
        logger.warning(f"Feed parsing error: {parsed.bozo_exception}")
        raise FeedFetchError(f"Failed to parse feed: {parsed.bozo_exception}")

    items = [_entry_to_item(entry) for entry in parsed.entries]

    logger.info(f"Parsed {len(items)} items from feed")
    return Feed(
        title=parsed.feed.get("title", ""),
        description=parsed.feed.get("description", "") or parsed.feed.get("subtitle", ""),
        items=tuple(items),
    )


def _entry_to_item(entry: dict) -> FeedItem:
    pub_date = entry.get("published", "") or entry.get("updated", "")
    published_at = parse_pub_date(pub_date) or parse_pub_date(
        entry.get("published_parsed") or entry.get("updated_parsed")
    )

    content = _entry_content(entry)
    summary = entry.get("summary") or content

    return FeedItem(
        title=entry.get("title", "").strip(),
        link=entry.get("link", "").strip(),
        pub_date=pub_date,
        published_at=published_at,
        author=entry.get("author") or None,
        content=content,
        content_snippet=_strip_html(summary),
        categories=tuple(_entry_categories(entry)),
    )


def _entry_content(entry: dict) -> Optional[str]:
    # content:encoded / atom:content first, then the description
    for block in entry.get("content", []) or []:
        value = block.get("value")
        if value:
            return value
    return entry.get("summary") or None


def _entry_categories(entry: dict) -> List[str]:
    categories = []
    for tag in entry.get("tags", []) or []:
        term = (tag.get("term") or "").strip()
        if term and term not in categories:
            categories.append(term)
    return categories


def _strip_html(html: Optional[str]) -> Optional[str]:
    """Plain-text version of an HTML fragment, or None if empty."""
    if not html:
        return None

    text = BeautifulSoup(html, "lxml").get_text(" ", strip=True)
    return text or None
