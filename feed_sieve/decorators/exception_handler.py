"""Exception handling decorator for MCP tools.

Turns any exception escaping a tool into a failure payload so a single
bad call can't take the server down.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict


logger = logging.getLogger(__name__)


def exception_handler(func: Callable[..., Awaitable[Dict[str, Any]]]):
    """Wrap an async tool so exceptions become {"success": False, "error": ...}."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except ValueError as e:
            logger.warning(f"{func.__name__} rejected input: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"{func.__name__} failed: {e}", exc_info=True)
            return {"success": False, "error": f"{type(e).__name__}: {e}"}

    return wrapper
