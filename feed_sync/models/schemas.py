"""Data models for feed_sync.

This module defines the core data structures for feeds, parsed feed items,
articles and their persisted read/starred state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedFormat(str, Enum):
    """Document dialects the parser understands."""

    RSS2 = "rss2"
    ATOM = "atom"


@dataclass
class Feed:
    """Represents a subscribed feed source."""

    id: str
    title: str
    url: str
    thumbnail_url: Optional[str] = None
    added_at: datetime = field(default_factory=utcnow)


@dataclass
class FeedMeta:
    """Channel-level metadata extracted from a feed document."""

    title: Optional[str] = None
    thumbnail_url: Optional[str] = None


@dataclass
class FeedItem:
    """Represents one item/entry parsed from a feed document."""

    title: str
    link: str
    content_html: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    featured_image_url: Optional[str] = None


@dataclass(frozen=True)
class ArticleState:
    """User-set state for an article, persisted independently of content."""

    is_read: bool = False
    is_starred: bool = False


@dataclass(frozen=True)
class Article:
    """Represents an article in the live collection.

    Content fields are replaced on every refresh of the owning feed;
    is_read/is_starred are carried forward from the ArticleState map.
    """

    id: str
    feed_id: str
    title: str
    link: str
    published_at: datetime
    author: Optional[str] = None
    content_html: Optional[str] = None
    featured_image_url: Optional[str] = None
    is_read: bool = False
    is_starred: bool = False


class ArticleFilter(str, Enum):
    """Smart filters over the live article collection."""

    ALL = "all"
    UNREAD = "unread"
    STARRED = "starred"

    def matches(self, article: Article) -> bool:
        if self is ArticleFilter.UNREAD:
            return not article.is_read
        if self is ArticleFilter.STARRED:
            return article.is_starred
        return True
