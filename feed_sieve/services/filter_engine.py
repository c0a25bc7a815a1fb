"""Phrase and category filter engine.

Pure functions that decide which feed items are visible, order them by
seen status, and locate phrase matches for highlighting.
"""

from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, List, Optional, Sequence, Tuple

from feed_sieve.models.schemas import (
    FeedItem,
    FilterResult,
    FilterStats,
    PhraseBlockRule,
    PhraseMatch,
    PreferenceSnapshot,
)


def _fold(text: str, rule: PhraseBlockRule) -> str:
    return text if rule.case_sensitive else text.lower()


def _contains(text: Optional[str], rule: PhraseBlockRule) -> bool:
    if not text or not rule.phrase:
        return False
    return _fold(rule.phrase, rule) in _fold(text, rule)


def has_blocked_category(item: FeedItem, blocked_categories: Iterable[str]) -> bool:
    """True if any of the item's categories is blocked (exact match)."""
    blocked = set(blocked_categories)
    return any(category in blocked for category in item.categories)


def rule_matches(item: FeedItem, rule: PhraseBlockRule) -> bool:
    """True if the rule hits the item's title or its content.

    A rule with neither match_title nor match_content set matches nothing.
    """
    if rule.match_title and _contains(item.title, rule):
        return True
    if rule.match_content and _contains(item.body, rule):
        return True
    return False


def should_include(
    item: FeedItem,
    blocked_categories: Iterable[str],
    blocked_phrases: Iterable[PhraseBlockRule],
) -> bool:
    """The combined visibility predicate for one item."""
    if has_blocked_category(item, blocked_categories):
        return False
    return not any(rule_matches(item, rule) for rule in blocked_phrases)


def filter_items(
    items: Iterable[FeedItem],
    blocked_categories: Iterable[str],
    blocked_phrases: Iterable[PhraseBlockRule],
) -> List[FeedItem]:
    """Drop every item that carries a blocked category or matches a phrase rule."""
    blocked = frozenset(blocked_categories)
    phrases = tuple(blocked_phrases)
    return [item for item in items if should_include(item, blocked, phrases)]


def is_seen(item: FeedItem, previous_load: Optional[datetime]) -> bool:
    """An item is seen iff it was published strictly before the cutoff."""
    if previous_load is None or item.published_at is None:
        return False
    return item.published_at < previous_load


def sort_by_seen(items: Iterable[FeedItem], previous_load: Optional[datetime]) -> List[FeedItem]:
    """Order unseen items first, then newest first within each group.

    Items without a publish date compare equal to everything, so they
    keep their relative position (sorted() is stable).
    """

    def compare(a: FeedItem, b: FeedItem) -> int:
        if a.published_at is None or b.published_at is None:
            return 0

        a_seen = is_seen(a, previous_load)
        b_seen = is_seen(b, previous_load)
        if a_seen != b_seen:
            return 1 if a_seen else -1

        if a.published_at > b.published_at:
            return -1
        if a.published_at < b.published_at:
            return 1
        return 0

    return sorted(items, key=cmp_to_key(compare))


def apply_filters(
    items: Sequence[FeedItem],
    snapshot: PreferenceSnapshot,
    previous_load: Optional[datetime],
) -> FilterResult:
    """Filter and order a fetched item list against the current rules.

    Args:
        items: Raw items in feed order
        snapshot: Current blocked categories and phrases
        previous_load: Seen-cutoff, or None to treat everything as new

    Returns:
        FilterResult with the visible items and hide counts
    """
    visible = filter_items(items, snapshot.blocked_categories, snapshot.blocked_phrases)
    ordered = sort_by_seen(visible, previous_load)
    return FilterResult(
        items=ordered,
        stats=FilterStats(total_items=len(items), visible_items=len(ordered)),
    )


def _fold_with_index(text: str, rule: PhraseBlockRule) -> Tuple[str, List[int]]:
    """Fold text for matching, plus the original index of each folded char.

    Lowercasing can grow a character ("İ" becomes two code points), so
    folded positions are mapped back instead of reused.
    """
    if rule.case_sensitive:
        return text, list(range(len(text)))

    folded = []
    index: List[int] = []
    for i, char in enumerate(text):
        lowered = char.lower()
        folded.append(lowered)
        index.extend([i] * len(lowered))
    return "".join(folded), index


def find_matches(
    text: Optional[str],
    rules: Iterable[PhraseBlockRule],
    is_title: bool,
) -> List[PhraseMatch]:
    """Find every non-overlapping occurrence of each applicable rule's phrase.

    Args:
        text: Title or content to scan
        rules: Phrase rules to look for
        is_title: Whether text is a title (selects match_title vs match_content rules)

    Returns:
        One PhraseMatch per rule that occurs at least once, with positions
        in the original text
    """
    if not text:
        return []

    matches = []
    for rule in rules:
        # Skip rules that don't target this part of the item
        if (is_title and not rule.match_title) or (not is_title and not rule.match_content):
            continue
        if not rule.phrase:
            continue

        haystack, index = _fold_with_index(text, rule)
        needle = _fold(rule.phrase, rule)

        spans = []
        pos = haystack.find(needle)
        while pos != -1:
            end = pos + len(needle)
            spans.append((index[pos], index[end - 1] + 1))
            pos = haystack.find(needle, end)

        if spans:
            matches.append(PhraseMatch(
                rule=rule,
                offsets=[start for start, _ in spans],
                length=len(rule.phrase),
                spans=spans,
            ))

    return matches


def merge_spans(matches: Iterable[PhraseMatch]) -> List[Tuple[int, int]]:
    """Coalesce match spans into contiguous (start, end) ranges.

    Overlapping and touching spans merge; anything separated by at least
    one character stays separate.
    """
    spans = sorted(span for match in matches for span in match.spans)

    merged: List[Tuple[int, int]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))

    return merged


def highlight_ranges(
    text: Optional[str],
    rules: Iterable[PhraseBlockRule],
    is_title: bool,
) -> List[Tuple[int, int]]:
    return merge_spans(find_matches(text, rules, is_title))


def describe_rule(rule: PhraseBlockRule) -> str:
    """Short label like "layoff (title) [Aa]" for listing a rule."""
    if rule.match_title and rule.match_content:
        scope = "(all)"
    elif rule.match_title:
        scope = "(title)"
    elif rule.match_content:
        scope = "(content)"
    else:
        scope = "(none)"

    return f"{rule.phrase} {scope}{' [Aa]' if rule.case_sensitive else ''}"
