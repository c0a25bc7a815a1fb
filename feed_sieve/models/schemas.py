"""Data models for feed_sieve.

This module defines the feed records, the blocking rules and the
timestamp pair used to decide which items the reader has already seen.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from feed_sieve.utils.dates import from_iso, parse_pub_date, to_iso


@dataclass(frozen=True)
class FeedItem:
    """Represents one syndicated article from the feed."""

    title: str = ""
    link: str = ""
    pub_date: str = ""
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    content: Optional[str] = None
    content_snippet: Optional[str] = None
    categories: Tuple[str, ...] = ()

    @property
    def body(self) -> str:
        """Text that phrase rules with match_content are tested against."""
        return self.content or self.content_snippet or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "pubDate": self.pub_date,
            "creator": self.author,
            "content": self.content,
            "contentSnippet": self.content_snippet,
            "categories": list(self.categories),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedItem":
        pub_date = data.get("pubDate") or ""
        return cls(
            title=data.get("title") or "",
            link=data.get("link") or "",
            pub_date=pub_date,
            published_at=parse_pub_date(pub_date),
            author=data.get("creator"),
            content=data.get("content"),
            content_snippet=data.get("contentSnippet"),
            categories=tuple(data.get("categories") or ()),
        )


@dataclass(frozen=True)
class Feed:
    """A fetched feed: metadata plus its items in feed order."""

    title: str = ""
    description: str = ""
    items: Tuple[FeedItem, ...] = ()

    def with_items(self, items: List[FeedItem]) -> "Feed":
        return replace(self, items=tuple(items))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feed":
        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            items=tuple(FeedItem.from_dict(item) for item in data.get("items") or ()),
        )


class CategoryState(str, Enum):
    """Where a category label sits in the two-phase blocking flow."""

    UNBLOCKED = "unblocked"
    STAGED = "staged"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class PhraseBlockRule:
    """A phrase that hides any item whose title or content contains it."""

    id: str
    owner_id: Optional[str]
    phrase: str
    match_title: bool = True
    match_content: bool = True
    case_sensitive: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_local(self) -> bool:
        return self.id.startswith("local-")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "phrase": self.phrase,
            "match_title": self.match_title,
            "match_content": self.match_content,
            "case_sensitive": self.case_sensitive,
            "created_at": to_iso(self.created_at) if self.created_at else None,
            "updated_at": to_iso(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhraseBlockRule":
        return cls(
            id=str(data.get("id") or ""),
            owner_id=data.get("user_id"),
            phrase=data.get("phrase") or "",
            match_title=bool(data.get("match_title", True)),
            match_content=bool(data.get("match_content", True)),
            case_sensitive=bool(data.get("case_sensitive", False)),
            created_at=from_iso(data.get("created_at")),
            updated_at=from_iso(data.get("updated_at")),
        )


@dataclass(frozen=True)
class VisitTimestamps:
    """The seen-cutoff and the instant the latest load completed."""

    previous_load: Optional[datetime]
    this_load: Optional[datetime]


@dataclass(frozen=True)
class PreferenceSnapshot:
    """The reconciled rule sets handed to the filter engine."""

    blocked_categories: Tuple[str, ...] = ()
    blocked_phrases: Tuple[PhraseBlockRule, ...] = ()


@dataclass(frozen=True)
class FilterStats:
    """Counts describing how much of the feed the filters hid."""

    total_items: int
    visible_items: int

    @property
    def blocked_count(self) -> int:
        return self.total_items - self.visible_items


@dataclass(frozen=True)
class FilterResult:
    items: List[FeedItem]
    stats: FilterStats


@dataclass(frozen=True)
class PhraseMatch:
    """Occurrences of one rule's phrase inside a piece of text.

    offsets and spans index the original text. A case-insensitive span
    can differ from length when lowercasing changes a character's size.
    """

    rule: PhraseBlockRule
    offsets: List[int] = field(default_factory=list)
    length: int = 0
    spans: List[Tuple[int, int]] = field(default_factory=list)
