"""Feed sync MCP tools.

This module provides MCP tools for subscribing to feeds, refreshing them and
managing article read/starred state.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import Context

from feed_sync.errors import FeedError
from feed_sync.models.schemas import Article, ArticleFilter, Feed
from feed_sync.runtime import FeedRuntime
from feed_sync.services.url_normalizer import normalize_url

logger = logging.getLogger(__name__)


def _feed_dict(feed: Feed, runtime: FeedRuntime) -> Dict[str, Any]:
    articles = runtime.store.articles_for(feed.id)
    return {
        "id": feed.id,
        "title": feed.title,
        "url": feed.url,
        "thumbnail_url": feed.thumbnail_url,
        "added_at": feed.added_at.isoformat(),
        "total_articles": len(articles),
        "unread_articles": sum(1 for a in articles if not a.is_read),
    }


def _article_dict(article: Article) -> Dict[str, Any]:
    return {
        "id": article.id,
        "feed_id": article.feed_id,
        "title": article.title,
        "url": article.link,
        "author": article.author,
        "featured_image_url": article.featured_image_url,
        "published_at": article.published_at.isoformat(),
        "is_read": article.is_read,
        "is_starred": article.is_starred,
    }


def create_feed_tools(runtime: FeedRuntime) -> List[Callable]:
    """Build the feed tools bound to a runtime.

    Args:
        runtime: Shared store and orchestrator for this server

    Returns:
        List of async tool functions for registration
    """

    async def subscribe_feed(url: str, title: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Subscribe to an RSS or Atom feed.

        The feed is fetched and parsed immediately; if that fails nothing is
        added. Subscribing to a feed that already exists refreshes it and keeps
        its current title.

        Args:
            url: Feed URL (will be normalized to https:// if no scheme)
            title: Fallback title used only if the feed declares none (empty string for none)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - feed: object with id, title, url, thumbnail_url, article counts
            - error: string if success is False
        """
        logger.info(f"subscribe_feed called: url={url}")
        await runtime.start()

        if not url.startswith(("http://", "https://")):
            url = "https://" + url

        try:
            feed = await runtime.orchestrator.subscribe(url, title=title or None)
        except FeedError as e:
            return {
                "success": False,
                "error": str(e),
            }

        return {
            "success": True,
            "feed": _feed_dict(feed, runtime),
        }

    async def remove_feed(feed_url: str, ctx: Context = None) -> Dict[str, Any]:
        """Unsubscribe from a feed and drop its articles from the collection.

        Starred and read state is kept, so re-subscribing later restores it.

        Args:
            feed_url: URL of the feed to remove
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - articles_removed: count of articles dropped
            - error: string if feed not found
        """
        logger.info(f"remove_feed called: feed_url={feed_url}")
        await runtime.start()

        success, count = await runtime.store.delete_feed(normalize_url(feed_url))

        if success:
            return {
                "success": True,
                "message": f"Removed feed '{feed_url}' and {count} articles",
                "articles_removed": count,
            }
        else:
            return {
                "success": False,
                "error": f"Feed '{feed_url}' not found",
            }

    async def list_feeds(ctx: Context = None) -> Dict[str, Any]:
        """List all subscribed feeds with article counts, sorted by title.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of feeds
            - feeds: list of feed objects
        """
        logger.info("list_feeds called")
        await runtime.start()

        feeds = [_feed_dict(f, runtime) for f in runtime.store.feeds]
        return {
            "success": True,
            "count": len(feeds),
            "feeds": feeds,
        }

    async def refresh_feeds(feed_url: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Re-fetch feeds and rebuild their articles, keeping read/starred state.

        With no feed_url every feed is refreshed concurrently and individual
        failures are reported per feed. With a feed_url only that feed is
        refreshed and a failure is returned as an error.

        Args:
            feed_url: Refresh only this feed (empty string refreshes all feeds)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - feeds_refreshed: number of feeds processed successfully
            - total_new_articles: articles not seen before
            - results: list of per-feed results with feed_id, state, new_articles, error
        """
        logger.info(f"refresh_feeds called: feed_url={feed_url}")
        await runtime.start()

        if feed_url:
            feed = runtime.store.get_feed(normalize_url(feed_url))
            if not feed:
                return {
                    "success": False,
                    "error": f"Feed '{feed_url}' not found",
                }
            try:
                new_articles = await runtime.orchestrator.refresh_one(feed)
            except FeedError as e:
                return {
                    "success": False,
                    "error": str(e),
                }
            return {
                "success": True,
                "feeds_refreshed": 1,
                "total_new_articles": new_articles,
                "results": [{
                    "feed_id": feed.id,
                    "state": "done",
                    "new_articles": new_articles,
                    "error": None,
                }],
            }

        results = await runtime.orchestrator.refresh_all()
        return {
            "success": True,
            "feeds_refreshed": sum(1 for r in results if r.error is None),
            "total_new_articles": sum(r.new_articles for r in results),
            "results": [
                {
                    "feed_id": r.feed_id,
                    "state": r.state.value,
                    "new_articles": r.new_articles,
                    "error": r.error,
                }
                for r in results
            ],
        }

    async def import_opml(
        opml_content: str = "",
        opml_path: str = "",
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """Subscribe to every feed listed in an OPML document.

        Feeds that fail to subscribe are skipped; the import still succeeds.

        Args:
            opml_content: OPML XML text (empty string to read opml_path instead)
            opml_path: Path to an OPML file on the server (used when opml_content is empty)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - imported: count of feeds subscribed
            - feeds: list of imported feed objects
            - error: string if the OPML could not be read or parsed
        """
        logger.info(f"import_opml called: opml_path={opml_path}")
        await runtime.start()

        if opml_content:
            data = opml_content.encode("utf-8")
        elif opml_path:
            try:
                data = Path(opml_path).expanduser().read_bytes()
            except OSError as e:
                return {
                    "success": False,
                    "error": f"Could not read OPML file: {e}",
                }
        else:
            return {
                "success": False,
                "error": "Provide opml_content or opml_path",
            }

        try:
            feeds = await runtime.orchestrator.import_opml(data)
        except FeedError as e:
            return {
                "success": False,
                "error": str(e),
            }

        return {
            "success": True,
            "imported": len(feeds),
            "feeds": [_feed_dict(f, runtime) for f in feeds],
        }

    async def list_articles(
        feed_url: str = "",
        state_filter: str = "all",
        limit: int = 50,
        ctx: Context = None,
    ) -> Dict[str, Any]:
        """List articles newest first.

        Args:
            feed_url: Only articles from this feed (empty string for all feeds)
            state_filter: One of "all", "unread", "starred"
            limit: Maximum number of articles to return (default: 50, 0 for no limit)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of articles returned
            - articles: list of article objects with id, title, url, dates, read/starred state
        """
        logger.info(f"list_articles called: feed_url={feed_url}, state_filter={state_filter}, limit={limit}")
        await runtime.start()

        try:
            article_filter = ArticleFilter(state_filter.lower())
        except ValueError:
            return {
                "success": False,
                "error": f"Invalid filter: {state_filter}. Use 'all', 'unread' or 'starred'",
            }

        articles = runtime.store.articles_for(article_filter)
        if feed_url:
            feed_id = normalize_url(feed_url)
            articles = [a for a in articles if a.feed_id == feed_id]
        if limit > 0:
            articles = articles[:limit]

        return {
            "success": True,
            "count": len(articles),
            "articles": [_article_dict(a) for a in articles],
        }

    async def mark_article_read(article_id: str, ctx: Context = None) -> Dict[str, Any]:
        """Mark a specific article as read.

        Args:
            article_id: Article id (from list_articles response)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - article: updated article object (if it is in the collection)
        """
        logger.info(f"mark_article_read called: article_id={article_id}")
        await runtime.start()

        return _state_response(article_id, await runtime.store.set_read(article_id, True))

    async def mark_article_unread(article_id: str, ctx: Context = None) -> Dict[str, Any]:
        """Mark a specific article as unread.

        Args:
            article_id: Article id (from list_articles response)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - article: updated article object (if it is in the collection)
        """
        logger.info(f"mark_article_unread called: article_id={article_id}")
        await runtime.start()

        return _state_response(article_id, await runtime.store.set_read(article_id, False))

    async def toggle_star(article_id: str, ctx: Context = None) -> Dict[str, Any]:
        """Star or unstar an article. Starred articles keep their state after
        they fall out of the collection.

        Args:
            article_id: Article id (from list_articles response)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - article: updated article object (if it is in the collection)
        """
        logger.info(f"toggle_star called: article_id={article_id}")
        await runtime.start()

        return _state_response(article_id, await runtime.store.toggle_star(article_id))

    async def mark_all_read(feed_url: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Mark all unread articles as read, optionally for one feed.

        Args:
            feed_url: Only mark articles from this feed (empty string marks all feeds)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - articles_marked_read: count of articles updated
            - error: string if specified feed not found
        """
        logger.info(f"mark_all_read called: feed_url={feed_url}")
        await runtime.start()

        article_ids = None
        if feed_url:
            feed_id = normalize_url(feed_url)
            if runtime.store.get_feed(feed_id) is None:
                return {
                    "success": False,
                    "error": f"Feed '{feed_url}' not found",
                }
            article_ids = [a.id for a in runtime.store.articles_for(feed_id)]

        count = await runtime.store.mark_all_read(article_ids)
        return {
            "success": True,
            "articles_marked_read": count,
            "feed_filter": feed_url or None,
        }

    return [
        subscribe_feed,
        remove_feed,
        list_feeds,
        refresh_feeds,
        import_opml,
        list_articles,
        mark_article_read,
        mark_article_unread,
        toggle_star,
        mark_all_read,
    ]


def _state_response(article_id: str, article: Optional[Article]) -> Dict[str, Any]:
    return {
        "success": True,
        "article_id": article_id,
        "article": _article_dict(article) if article else None,
    }
