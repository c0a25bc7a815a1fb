"""Logging setup for feed_sieve.

Logs go to stderr because stdout carries the MCP STDIO transport.
"""

import logging
import sys
from typing import Optional

from feed_sieve.config import ServerConfig, get_config


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("feed_sieve")


def setup_logging(config: Optional[ServerConfig] = None) -> logging.Logger:
    """Configure the feed_sieve logger hierarchy.

    Args:
        config: Optional server configuration (uses the global one if omitted)

    Returns:
        The package root logger
    """
    if config is None:
        config = get_config()

    level = getattr(logging, config.log_level, logging.INFO)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
    return logger
