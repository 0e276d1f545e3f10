"""In-memory feed store with write-through persistence.

The FeedStore owns the only shared mutable state in the engine: the feed
list, the live article collection and the ArticleState map. It is built once
at startup around a persistence collaborator and passed explicitly to the
orchestrator and tools. Every mutation runs under a single asyncio lock.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from feed_sync.models.schemas import Article, ArticleFilter, ArticleState, Feed, FeedItem
from feed_sync.services.merge import DEFAULT_MAX_ARTICLES, MergeResult, merge_feed

logger = logging.getLogger(__name__)


class FeedRepository(Protocol):
    """Persistence contract consumed by the store."""

    async def load_feeds(self) -> List[Feed]: ...

    async def save_feeds(self, feeds: Sequence[Feed]) -> None: ...

    async def load_article_states(self) -> Dict[str, ArticleState]: ...

    async def save_article_states(self, states: Mapping[str, ArticleState]) -> None: ...


class FeedStore:
    """Feeds, live articles and read/starred state."""

    def __init__(
        self,
        repository: FeedRepository,
        max_articles_per_feed: int = DEFAULT_MAX_ARTICLES,
    ):
        self.repository = repository
        self.max_articles_per_feed = max_articles_per_feed
        self.feeds: List[Feed] = []
        self.articles: List[Article] = []
        self.states: Dict[str, ArticleState] = {}
        self.lock = asyncio.Lock()

    async def load(self) -> None:
        """Load feeds and article states from the repository."""
        async with self.lock:
            self.feeds = await self.repository.load_feeds()
            self.states = await self.repository.load_article_states()
            self.feeds.sort(key=lambda f: f.title.casefold())
        logger.info(f"Loaded {len(self.feeds)} feeds and {len(self.states)} article states")

    # Queries

    def get_feed(self, feed_id: str) -> Optional[Feed]:
        return next((f for f in self.feeds if f.id == feed_id), None)

    def get_article(self, article_id: str) -> Optional[Article]:
        return next((a for a in self.articles if a.id == article_id), None)

    def get_state(self, article_id: str) -> ArticleState:
        return self.states.get(article_id) or ArticleState()

    def articles_for(self, article_filter: Union[ArticleFilter, str] = ArticleFilter.ALL) -> List[Article]:
        """Return live articles matching a smart filter or a feed id."""
        if isinstance(article_filter, ArticleFilter):
            return [a for a in self.articles if article_filter.matches(a)]
        return [a for a in self.articles if a.feed_id == article_filter]

    # Merging

    async def merge(
        self,
        feed: Feed,
        items: Sequence[FeedItem],
        existing_only: bool = False,
    ) -> Optional[MergeResult]:
        """Merge one feed's parsed items into the collection."""
        results = await self.merge_batch([(feed, items)], existing_only=existing_only)
        return results[0] if results else None

    async def merge_batch(
        self,
        parsed: Iterable[Tuple[Feed, Sequence[FeedItem]]],
        existing_only: bool = False,
    ) -> List[MergeResult]:
        """Merge several feeds' results sequentially under the store lock.

        With existing_only, results for feeds removed since they were
        scheduled are dropped instead of re-subscribing them.
        """
        results = []
        async with self.lock:
            feed_ids = {f.id for f in self.feeds}

            for feed, items in parsed:
                if existing_only and self.get_feed(feed.id) is None:
                    logger.info(f"Discarding refresh of removed feed {feed.url}")
                    continue
                result = merge_feed(
                    feed,
                    items,
                    self.articles,
                    self.states,
                    self.feeds,
                    max_articles=self.max_articles_per_feed,
                )
                self.feeds = result.feeds
                self.articles = result.articles
                results.append(result)

            if {f.id for f in self.feeds} != feed_ids:
                await self.repository.save_feeds(self.feeds)

        return results

    # Article state

    async def _update_state(
        self,
        article_id: str,
        update: Callable[[ArticleState], ArticleState],
    ) -> Optional[Article]:
        async with self.lock:
            state = update(self.get_state(article_id))
            self.states[article_id] = state
            updated = self._apply_state({article_id: state})
            await self.repository.save_article_states(self.states)
        return updated.get(article_id)

    def _apply_state(self, states: Mapping[str, ArticleState]) -> Dict[str, Article]:
        updated = {}
        articles = []
        for article in self.articles:
            state = states.get(article.id)
            if state is not None:
                article = replace(article, is_read=state.is_read, is_starred=state.is_starred)
                updated[article.id] = article
            articles.append(article)
        self.articles = articles
        return updated

    async def set_read(self, article_id: str, is_read: bool) -> Optional[Article]:
        """Set an article's read flag. Returns the live article, if any."""
        return await self._update_state(article_id, lambda s: replace(s, is_read=is_read))

    async def toggle_read(self, article_id: str) -> Optional[Article]:
        return await self._update_state(article_id, lambda s: replace(s, is_read=not s.is_read))

    async def toggle_star(self, article_id: str) -> Optional[Article]:
        return await self._update_state(article_id, lambda s: replace(s, is_starred=not s.is_starred))

    async def mark_all_read(self, article_ids: Optional[Iterable[str]] = None) -> int:
        """Mark articles read; all live articles when no ids are given.

        Returns:
            Number of articles whose state changed
        """
        async with self.lock:
            if article_ids is None:
                article_ids = [a.id for a in self.articles]

            changed = {}
            for article_id in article_ids:
                state = self.get_state(article_id)
                if not state.is_read:
                    changed[article_id] = replace(state, is_read=True)

            if changed:
                self.states.update(changed)
                self._apply_state(changed)
                await self.repository.save_article_states(self.states)

        return len(changed)

    # Feed lifecycle

    async def delete_feed(self, feed_id: str) -> Tuple[bool, int]:
        """Remove a feed and its live articles. Article states are kept.

        Returns:
            Tuple of (success, article_count_removed)
        """
        async with self.lock:
            if self.get_feed(feed_id) is None:
                return (False, 0)

            before = len(self.articles)
            self.feeds = [f for f in self.feeds if f.id != feed_id]
            self.articles = [a for a in self.articles if a.feed_id != feed_id]
            await self.repository.save_feeds(self.feeds)

        return (True, before - len(self.articles))
