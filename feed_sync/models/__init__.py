"""Data models for feed_sync."""

from .schemas import (
    Article,
    ArticleFilter,
    ArticleState,
    Feed,
    FeedFormat,
    FeedItem,
    FeedMeta,
)

__all__ = [
    "Article",
    "ArticleFilter",
    "ArticleState",
    "Feed",
    "FeedFormat",
    "FeedItem",
    "FeedMeta",
]
