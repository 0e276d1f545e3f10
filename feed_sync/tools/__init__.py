"""MCP tools for feed_sync."""

from .feed_tools import create_feed_tools

__all__ = ["create_feed_tools"]
