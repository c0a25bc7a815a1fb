"""Logging decorator for MCP tools."""

import functools
import logging
import time
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


def tool_logger(func, config: Optional[Dict[str, Any]] = None):
    """Log each tool call with its arguments, outcome and duration."""
    server_name = (config or {}).get("name", "feed_sieve")

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logged_kwargs = {k: v for k, v in kwargs.items() if k != "ctx"}
        logger.info(f"[{server_name}] {func.__name__} called: {logged_kwargs}")

        start = time.perf_counter()
        result = await func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000

        success = result.get("success") if isinstance(result, dict) else None
        logger.info(f"[{server_name}] {func.__name__} finished in {duration_ms:.1f}ms (success={success})")
        return result

    return wrapper
