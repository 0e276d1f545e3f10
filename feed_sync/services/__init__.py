"""Services for feed_sync."""

from .feed_parser import parse_feed
from .fetcher import fetch
from .format_sniffer import detect_format
from .merge import MergeResult, merge_feed
from .opml import parse_opml
from .orchestrator import RefreshOrchestrator, RefreshResult, RefreshState
from .state_store import FeedStore
from .url_normalizer import normalize_url

__all__ = [
    "FeedStore",
    "MergeResult",
    "RefreshOrchestrator",
    "RefreshResult",
    "RefreshState",
    "detect_format",
    "fetch",
    "merge_feed",
    "normalize_url",
    "parse_feed",
    "parse_opml",
]
