"""Logging setup for feed_sync.

Log records go to stderr: stdout carries the MCP stdio transport.
"""

import logging
import sys

from feed_sync.config import ServerConfig

logger = logging.getLogger("feed_sync")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(config: ServerConfig) -> None:
    """Configure the feed_sync logger hierarchy.

    Safe to call more than once; the handler is only installed the first time.

    Args:
        config: Server configuration providing the log level
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
