"""Merge engine.

Reconciles freshly parsed feed items with the live article collection. The
feed's articles are rebuilt in full from the new parse; read/starred state is
carried forward from the ArticleState map, keyed by normalized link.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from feed_sync.models.schemas import Article, ArticleState, Feed, FeedItem, utcnow
from feed_sync.services.url_normalizer import normalize_url

DEFAULT_MAX_ARTICLES = 100


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging one feed's items into the collection."""

    feed: Feed
    feeds: List[Feed]
    articles: List[Article]
    new_articles: int


def sort_articles(articles: Sequence[Article]) -> List[Article]:
    """Sort articles newest first. Ties keep their relative order."""
    return sorted(articles, key=lambda a: a.published_at, reverse=True)


def sort_feeds(feeds: Sequence[Feed]) -> List[Feed]:
    return sorted(feeds, key=lambda f: f.title.casefold())


def build_articles(
    feed_id: str,
    items: Sequence[FeedItem],
    states: Mapping[str, ArticleState],
    now: datetime,
) -> List[Article]:
    """Build Article records for one feed, carrying forward user state."""
    articles: Dict[str, Article] = {}

    for item in items:
        article_id = normalize_url(item.link)
        if article_id in articles:
            continue

        state = states.get(article_id) or ArticleState()
        articles[article_id] = Article(
            id=article_id,
            feed_id=feed_id,
            title=item.title,
            link=item.link,
            author=item.author,
            content_html=item.content_html,
            featured_image_url=item.featured_image_url,
            published_at=item.published_at or now,
            is_read=state.is_read,
            is_starred=state.is_starred,
        )

    return list(articles.values())


def upsert_feed(feed: Feed, feeds: Sequence[Feed]) -> Tuple[Feed, List[Feed]]:
    """Insert a feed, or keep the existing record's display fields.

    Returns:
        Tuple of (stored feed, updated feed list sorted by title)
    """
    for existing in feeds:
        if existing.id == feed.id:
            return existing, list(feeds)

    return feed, sort_feeds([*feeds, feed])


def merge_feed(
    feed: Feed,
    items: Sequence[FeedItem],
    articles: Sequence[Article],
    states: Mapping[str, ArticleState],
    feeds: Sequence[Feed],
    max_articles: int = DEFAULT_MAX_ARTICLES,
    now: Optional[datetime] = None,
) -> MergeResult:
    """Merge a fresh parse of one feed into the global collection.

    Args:
        feed: Feed the items were parsed from
        items: Parsed items in document order
        articles: Current global article collection
        states: ArticleState map keyed by article id
        feeds: Current feed list
        max_articles: Per-feed retention cap
        now: Timestamp substituted for items without a publish date

    Returns:
        MergeResult with the new feed list and article collection
    """
    if now is None:
        now = utcnow()

    stored, updated_feeds = upsert_feed(feed, feeds)

    fresh = sort_articles(build_articles(stored.id, items, states, now))[:max_articles]

    previous_ids = {a.id for a in articles if a.feed_id == stored.id}
    retained = [a for a in articles if a.feed_id != stored.id]

    return MergeResult(
        feed=stored,
        feeds=updated_feeds,
        articles=sort_articles(retained + fresh),
        new_articles=sum(1 for a in fresh if a.id not in previous_ids),
    )
