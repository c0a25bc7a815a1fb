"""Feed sieve MCP tools.

This module provides MCP tools for reading the filtered feed and for
managing the category and phrase blocking rules.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings.
"""

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context

from feed_sieve.models.schemas import FeedItem, PhraseBlockRule
from feed_sieve.services import filter_engine
from feed_sieve.services.orchestrator import FeedOrchestrator, get_orchestrator
from feed_sieve.utils.dates import format_relative_time, to_iso


logger = logging.getLogger(__name__)


def _item_to_dict(orchestrator: FeedOrchestrator, item: FeedItem) -> Dict[str, Any]:
    return {
        "title": item.title,
        "link": item.link,
        "published_at": to_iso(item.published_at) if item.published_at else None,
        "author": item.author,
        "summary": item.content_snippet,
        "categories": [
            {"label": c, "state": orchestrator.category_state(c).value}
            for c in item.categories
        ],
        "seen": orchestrator.is_seen(item),
    }


def _rule_to_dict(rule: PhraseBlockRule) -> Dict[str, Any]:
    data = rule.to_dict()
    data["label"] = filter_engine.describe_rule(rule)
    return data


def _filters_summary(orchestrator: FeedOrchestrator) -> Dict[str, Any]:
    return {
        "blocked_categories": orchestrator.blocked_categories,
        "staged_categories": orchestrator.staged_categories,
        "blocked_phrases": [_rule_to_dict(r) for r in orchestrator.blocked_phrases],
    }


def _feed_payload(orchestrator: FeedOrchestrator, limit: int) -> Dict[str, Any]:
    feed = orchestrator.feed
    items = orchestrator.items[:limit] if limit > 0 else orchestrator.items
    stats = orchestrator.stats
    previous_load = orchestrator.previous_load

    return {
        "state": orchestrator.state.value,
        "error": orchestrator.error or None,
        "title": feed.title if feed else None,
        "description": feed.description if feed else None,
        "last_visit": to_iso(previous_load) if previous_load else None,
        "last_visit_relative": format_relative_time(previous_load) if previous_load else None,
        "filter_stats": {
            "total_items": stats.total_items,
            "visible_items": stats.visible_items,
            "blocked_count": stats.blocked_count,
        } if stats else None,
        "count": len(items),
        "items": [_item_to_dict(orchestrator, item) for item in items],
    }


async def load_feed(reset_visit_time: bool = True, limit: int = 50, ctx: Context = None) -> Dict[str, Any]:
    """Fetch the feed, apply the blocking rules and return the visible items.

    With reset_visit_time the seen-cutoff moves to the previous visit and a
    new visit is recorded once the fetch succeeds. A failed fetch keeps the
    previously loaded items and reports the error.

    Args:
        reset_visit_time: Start a new visit (default: True)
        limit: Maximum number of items to return (0 for all)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool (False if the fetch failed or another load was running)
        - state: idle, loading, ready or failed
        - filter_stats: total_items, visible_items, blocked_count
        - items: visible items, unseen first, each with seen flag and category states
    """
    logger.info(f"load_feed called: reset_visit_time={reset_visit_time}, limit={limit}")

    orchestrator = await get_orchestrator()
    ran = await orchestrator.load(reset_visit_time=reset_visit_time)

    payload = _feed_payload(orchestrator, limit)
    payload["success"] = ran and not orchestrator.error
    if not ran:
        payload["error"] = "A feed load is already in progress"
    return payload


async def get_feed(limit: int = 50, ctx: Context = None) -> Dict[str, Any]:
    """Return the current filtered view without fetching.

    Args:
        limit: Maximum number of items to return (0 for all)
        ctx: MCP Context object (injected automatically)

    Returns:
        Same shape as load_feed
    """
    logger.info(f"get_feed called: limit={limit}")

    orchestrator = await get_orchestrator()
    payload = _feed_payload(orchestrator, limit)
    payload["success"] = True
    return payload


async def list_filters(ctx: Context = None) -> Dict[str, Any]:
    """List blocked categories, staged categories and blocked phrases.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, blocked_categories, staged_categories and
        blocked_phrases (each phrase with a short label such as "layoff (title)")
    """
    logger.info("list_filters called")

    orchestrator = await get_orchestrator()
    return {"success": True, **_filters_summary(orchestrator)}


async def preview_phrase(
    phrase: str,
    match_title: bool = True,
    match_content: bool = True,
    case_sensitive: bool = False,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Show which visible items a phrase would hide, with highlight ranges.

    Nothing is saved. Use add_blocked_phrase to actually block the phrase.

    Args:
        phrase: Candidate phrase
        match_title: Look in titles
        match_content: Look in content
        case_sensitive: Match case exactly
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, count and matches (title, link,
        title_ranges and content_ranges as [start, end] pairs)
    """
    logger.info(f"preview_phrase called: phrase={phrase!r}")

    orchestrator = await get_orchestrator()
    candidate = PhraseBlockRule(
        id="preview",
        owner_id=None,
        phrase=phrase.strip(),
        match_title=match_title,
        match_content=match_content,
        case_sensitive=case_sensitive,
    )

    matches: List[Dict[str, Any]] = []
    for item in orchestrator.items:
        title_ranges = filter_engine.highlight_ranges(item.title, [candidate], is_title=True)
        content_ranges = filter_engine.highlight_ranges(item.body, [candidate], is_title=False)
        if title_ranges or content_ranges:
            matches.append({
                "title": item.title,
                "link": item.link,
                "title_ranges": [list(r) for r in title_ranges],
                "content_ranges": [list(r) for r in content_ranges],
            })

    return {"success": True, "count": len(matches), "matches": matches}


async def stage_category(category: str, ctx: Context = None) -> Dict[str, Any]:
    """Stage a category for blocking. Staged categories don't filter until applied.

    Args:
        category: Category label exactly as it appears on items
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, staged (bool, False if already staged or
        blocked) and staged_categories
    """
    logger.info(f"stage_category called: category={category}")

    orchestrator = await get_orchestrator()
    staged = orchestrator.stage(category)
    return {
        "success": True,
        "staged": staged,
        "state": orchestrator.category_state(category).value,
        "staged_categories": orchestrator.staged_categories,
    }


async def toggle_staged_category(category: str, ctx: Context = None) -> Dict[str, Any]:
    """Stage the category if it isn't staged, unstage it if it is.

    Args:
        category: Category label
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, state and staged_categories
    """
    logger.info(f"toggle_staged_category called: category={category}")

    orchestrator = await get_orchestrator()
    state = orchestrator.toggle_staged(category)
    return {
        "success": True,
        "state": state.value,
        "staged_categories": orchestrator.staged_categories,
    }


async def apply_staged_categories(ctx: Context = None) -> Dict[str, Any]:
    """Block every staged category and save the block list.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, applied, blocked_categories and filter_stats
    """
    logger.info("apply_staged_categories called")

    orchestrator = await get_orchestrator()
    applied = await orchestrator.apply_staged()
    stats = orchestrator.stats
    return {
        "success": True,
        "applied": applied,
        "blocked_categories": orchestrator.blocked_categories,
        "blocked_count": stats.blocked_count if stats else 0,
    }


async def cancel_staged_categories(ctx: Context = None) -> Dict[str, Any]:
    """Discard every staged category without blocking anything.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success and cancelled
    """
    logger.info("cancel_staged_categories called")

    orchestrator = await get_orchestrator()
    return {"success": True, "cancelled": orchestrator.cancel_staged()}


async def unblock_category(category: str, ctx: Context = None) -> Dict[str, Any]:
    """Remove a category from the block list.

    Args:
        category: Blocked category label
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, blocked_categories, or error if the
        category wasn't blocked
    """
    logger.info(f"unblock_category called: category={category}")

    orchestrator = await get_orchestrator()
    if not await orchestrator.unblock_category(category):
        return {"success": False, "error": f"Category '{category}' is not blocked"}

    return {"success": True, "blocked_categories": orchestrator.blocked_categories}


async def clear_blocked_categories(ctx: Context = None) -> Dict[str, Any]:
    """Unblock every category.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success and cleared
    """
    logger.info("clear_blocked_categories called")

    orchestrator = await get_orchestrator()
    return {"success": True, "cleared": await orchestrator.clear_categories()}


async def add_blocked_phrase(
    phrase: str,
    match_title: bool = True,
    match_content: bool = True,
    case_sensitive: bool = False,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Hide every item whose title and/or content contains a phrase.

    Args:
        phrase: Phrase to block (surrounding whitespace is trimmed)
        match_title: Look in titles (default: True)
        match_content: Look in content (default: True)
        case_sensitive: Match case exactly (default: False)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, phrase (the stored rule) and blocked_count,
        or error if the phrase is blank or matches neither title nor content
    """
    logger.info(f"add_blocked_phrase called: phrase={phrase!r}")

    orchestrator = await get_orchestrator()
    rule = await orchestrator.add_phrase(phrase, match_title, match_content, case_sensitive)
    stats = orchestrator.stats
    return {
        "success": True,
        "phrase": _rule_to_dict(rule),
        "blocked_count": stats.blocked_count if stats else 0,
    }


def _optional_flag(name: str, value: str) -> Optional[bool]:
    """Map "" to None (keep current) and "true"/"false" to a bool."""
    value = value.strip().lower()
    if not value:
        return None
    if value in ("true", "false"):
        return value == "true"
    raise ValueError(f"{name} must be \"true\", \"false\" or empty, got {value!r}")


async def update_blocked_phrase(
    phrase_id: str,
    phrase: str = "",
    match_title: str = "",
    match_content: str = "",
    case_sensitive: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Change an existing blocked phrase. Empty arguments keep the current value.

    Args:
        phrase_id: Id of the rule (from list_filters)
        phrase: New phrase text (empty string keeps the current text)
        match_title: "true" or "false" to look in titles (empty keeps current)
        match_content: "true" or "false" to look in content (empty keeps current)
        case_sensitive: "true" or "false" to match case exactly (empty keeps current)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success and phrase, or error if not found
    """
    logger.info(f"update_blocked_phrase called: phrase_id={phrase_id}")

    orchestrator = await get_orchestrator()
    rule = await orchestrator.update_phrase(
        phrase_id,
        phrase=phrase or None,
        match_title=_optional_flag("match_title", match_title),
        match_content=_optional_flag("match_content", match_content),
        case_sensitive=_optional_flag("case_sensitive", case_sensitive),
    )

    if rule is None:
        return {"success": False, "error": f"Blocked phrase with id {phrase_id} not found"}

    return {"success": True, "phrase": _rule_to_dict(rule)}


async def remove_blocked_phrase(phrase_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Delete a blocked phrase.

    Args:
        phrase_id: Id of the rule (from list_filters)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, or error if not found
    """
    logger.info(f"remove_blocked_phrase called: phrase_id={phrase_id}")

    orchestrator = await get_orchestrator()
    if not await orchestrator.remove_phrase(phrase_id):
        return {"success": False, "error": f"Blocked phrase with id {phrase_id} not found"}

    return {"success": True, "remaining": len(orchestrator.blocked_phrases)}


async def clear_blocked_phrases(ctx: Context = None) -> Dict[str, Any]:
    """Delete every blocked phrase.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success
    """
    logger.info("clear_blocked_phrases called")

    orchestrator = await get_orchestrator()
    await orchestrator.clear_phrases()
    return {"success": True}


# List of feed tools for registration
feed_tools = [
    load_feed,
    get_feed,
    list_filters,
    preview_phrase,
    stage_category,
    toggle_staged_category,
    apply_staged_categories,
    cancel_staged_categories,
    unblock_category,
    clear_blocked_categories,
    add_blocked_phrase,
    update_blocked_phrase,
    remove_blocked_phrase,
    clear_blocked_phrases,
]
