"""Refresh orchestration.

Runs the fetch -> parse -> merge pipeline for one feed or for every
subscribed feed concurrently. Fetch and parse run in parallel per feed and
produce immutable results; merges are applied afterwards, one at a time,
through the FeedStore.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from feed_sync.models.schemas import Feed, FeedItem, FeedMeta
from feed_sync.services import fetcher
from feed_sync.services.feed_parser import DEFAULT_MAX_ITEMS, parse_feed
from feed_sync.services.format_sniffer import detect_format
from feed_sync.services.opml import parse_opml
from feed_sync.services.state_store import FeedStore
from feed_sync.services.url_normalizer import normalize_url

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    """Pipeline stages of a single feed refresh."""

    PENDING = "pending"
    FETCHING = "fetching"
    PARSING = "parsing"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ParsedFeed:
    """Fetched and parsed document for one feed, not yet merged."""

    feed: Feed
    meta: FeedMeta
    items: Tuple[FeedItem, ...]


@dataclass(frozen=True)
class RefreshResult:
    """Per-feed outcome of a batch refresh."""

    feed_id: str
    state: RefreshState
    new_articles: int = 0
    error: Optional[str] = None


class RefreshOrchestrator:
    """Schedules feed refreshes and subscriptions against a FeedStore."""

    def __init__(
        self,
        store: FeedStore,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        self.store = store
        self.client = client
        self.timeout = timeout
        self.max_items = max_items
        self.states: Dict[str, RefreshState] = {}

    def _transition(self, feed_id: str, state: RefreshState) -> None:
        self.states[feed_id] = state
        logger.debug(f"Feed {feed_id} -> {state.value}")

    async def _fetch_and_parse(self, feed: Feed) -> ParsedFeed:
        self._transition(feed.id, RefreshState.FETCHING)
        data = await fetcher.fetch(feed.url, client=self.client, timeout=self.timeout)

        self._transition(feed.id, RefreshState.PARSING)
        fmt = detect_format(data)
        meta, items = await asyncio.to_thread(parse_feed, data, feed.url, fmt, self.max_items)

        return ParsedFeed(feed=feed, meta=meta, items=tuple(items))

    async def _pipeline(self, feed: Feed) -> Tuple[Optional[ParsedFeed], Optional[str]]:
        """Fetch and parse one feed, containing any failure at this boundary."""
        try:
            return await self._fetch_and_parse(feed), None
        except Exception as e:
            self._transition(feed.id, RefreshState.FAILED)
            logger.error(f"Error refreshing {feed.url}: {e}")
            return None, str(e) or type(e).__name__

    async def refresh_all(self) -> List[RefreshResult]:
        """Refresh every subscribed feed concurrently.

        A failure in one feed is logged and reported in its RefreshResult;
        it never cancels or fails the other feeds. Parsed results are merged
        only after every fetch has finished, so cancelling the call discards
        them all.

        Returns:
            One RefreshResult per subscribed feed
        """
        feeds = list(self.store.feeds)
        for feed in feeds:
            self._transition(feed.id, RefreshState.PENDING)

        logger.info(f"Refreshing {len(feeds)} feeds")
        outcomes = await asyncio.gather(*(self._pipeline(feed) for feed in feeds))

        succeeded = [parsed for parsed, _ in outcomes if parsed is not None]
        for p in succeeded:
            self._transition(p.feed.id, RefreshState.MERGING)
        merged = await self.store.merge_batch(
            ((p.feed, p.items) for p in succeeded),
            existing_only=True,
        )
        new_counts = {m.feed.id: m.new_articles for m in merged}

        results = []
        for feed, (parsed, error) in zip(feeds, outcomes):
            if parsed is None:
                results.append(RefreshResult(
                    feed_id=feed.id,
                    state=RefreshState.FAILED,
                    error=error,
                ))
                continue
            self._transition(feed.id, RefreshState.DONE)
            results.append(RefreshResult(
                feed_id=feed.id,
                state=RefreshState.DONE,
                new_articles=new_counts.get(feed.id, 0),
            ))

        failed = sum(1 for r in results if r.state is RefreshState.FAILED)
        logger.info(f"Refreshed {len(feeds) - failed} of {len(feeds)} feeds")
        return results

    async def refresh_one(self, feed: Feed) -> int:
        """Refresh a single feed, propagating any failure to the caller.

        Returns:
            Number of articles that were not in the collection before
        """
        self._transition(feed.id, RefreshState.PENDING)
        try:
            parsed = await self._fetch_and_parse(feed)
            self._transition(feed.id, RefreshState.MERGING)
            result = await self.store.merge(parsed.feed, parsed.items, existing_only=True)
        except BaseException:
            self._transition(feed.id, RefreshState.FAILED)
            raise

        self._transition(feed.id, RefreshState.DONE)
        return result.new_articles if result else 0

    async def subscribe(self, url: str, title: Optional[str] = None) -> Feed:
        """Subscribe to a feed URL.

        Fetches and parses the feed once, builds the Feed from its metadata
        and merges its items. Nothing is added if any step fails.

        Args:
            url: Feed URL
            title: Fallback title when the feed declares none

        Returns:
            The stored Feed (the existing record if already subscribed)

        Raises:
            FeedError: If fetching or parsing fails
        """
        feed_id = normalize_url(url)
        candidate = Feed(id=feed_id, title=title or "", url=url)

        self._transition(feed_id, RefreshState.PENDING)
        try:
            parsed = await self._fetch_and_parse(candidate)
            feed = Feed(
                id=feed_id,
                title=parsed.meta.title or title or urlsplit(url).hostname or "Untitled Feed",
                url=url,
                thumbnail_url=parsed.meta.thumbnail_url,
            )
            self._transition(feed_id, RefreshState.MERGING)
            result = await self.store.merge(feed, parsed.items)
        except BaseException:
            self._transition(feed_id, RefreshState.FAILED)
            raise

        self._transition(feed_id, RefreshState.DONE)
        logger.info(f"Subscribed to {result.feed.title} ({url})")
        return result.feed

    async def _subscribe_entry(self, title: Optional[str], url: str) -> Optional[Feed]:
        try:
            return await self.subscribe(url, title=title)
        except Exception as e:
            logger.error(f"Failed to import feed {title or url}: {e}")
            return None

    async def import_opml(self, data: bytes) -> List[Feed]:
        """Subscribe to every feed listed in an OPML document.

        Entries that fail are logged and left out of the result; the import
        as a whole only fails if the OPML itself cannot be parsed.

        Returns:
            Feeds that were imported successfully
        """
        entries = parse_opml(data)
        logger.info(f"Importing {len(entries)} feeds from OPML")

        feeds = await asyncio.gather(
            *(self._subscribe_entry(title, url) for title, url in entries)
        )
        imported = [f for f in feeds if f is not None]

        logger.info(f"OPML import completed. Success: {len(imported)}, Failures: {len(entries) - len(imported)}")
        return imported

    def state_of(self, feed_id: str) -> Optional[RefreshState]:
        return self.states.get(feed_id)

