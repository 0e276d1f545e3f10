"""Error types raised while fetching and parsing feeds."""

from typing import Optional


class FeedError(Exception):
    """Base class for feed pipeline failures."""


class NetworkError(FeedError):
    """Transport-level failure (DNS, connect, timeout, reset)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Network error fetching {url}: {reason}")


class BadStatus(FeedError):
    """HTTP response with a status outside 200-299."""

    def __init__(self, code: int, url: Optional[str] = None):
        self.code = code
        self.url = url
        target = f" for {url}" if url else ""
        super().__init__(f"Bad HTTP status {code}{target}")


class NotFeed(FeedError):
    """Content is not a recognizable RSS/Atom/OPML document."""

    def __init__(self, reason: str = "Content is not an RSS or Atom feed"):
        self.reason = reason
        super().__init__(reason)
