"""Unit tests for refresh orchestration.

Network access is replaced by patching the fetcher; parsing and merging run
for real against the in-memory store.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from feed_sync.errors import BadStatus, NetworkError, NotFeed
from feed_sync.services.orchestrator import RefreshOrchestrator, RefreshState
from tests.conftest import numbered_items, rss_document


# Mark all tests as async
pytestmark = pytest.mark.anyio

FETCH = "feed_sync.services.orchestrator.fetcher.fetch"

A_URL = "https://a.example.com/feed"
B_URL = "https://b.example.com/feed"
C_URL = "https://c.example.com/feed"


def fake_fetch(documents):
    """AsyncMock fetch returning documents[url], raising it if it is an exception."""
    async def _fetch(url, client=None, timeout=None):
        result = documents[url]
        if isinstance(result, Exception):
            raise result
        return result
    return AsyncMock(side_effect=_fetch)


def three_feeds(count=2):
    return {
        A_URL: rss_document(numbered_items(count, "a.example.com"), title="Alpha"),
        B_URL: rss_document(numbered_items(count, "b.example.com"), title="Beta"),
        C_URL: rss_document(numbered_items(count, "c.example.com"), title="Gamma"),
    }


async def subscribe_all(orchestrator, documents):
    with patch(FETCH, fake_fetch(documents)):
        for url in documents:
            await orchestrator.subscribe(url)


class TestSubscribe:
    """Tests for subscribing to feeds."""

    async def test_subscribe_adds_feed_and_articles(self, store):
        orchestrator = RefreshOrchestrator(store)

        with patch(FETCH, fake_fetch({A_URL: rss_document(numbered_items(3, "a.example.com"), title="Alpha")})):
            feed = await orchestrator.subscribe(A_URL)

        assert feed.title == "Alpha"
        assert feed.id == A_URL
        assert store.feeds == [feed]
        assert len(store.articles) == 3
        assert orchestrator.state_of(A_URL) is RefreshState.DONE

    async def test_subscribe_failure_adds_nothing(self, store):
        orchestrator = RefreshOrchestrator(store)

        with patch(FETCH, AsyncMock(side_effect=BadStatus(404, A_URL))):
            with pytest.raises(BadStatus):
                await orchestrator.subscribe(A_URL)

        assert store.feeds == []
        assert store.articles == []
        assert orchestrator.state_of(A_URL) is RefreshState.FAILED

    async def test_subscribe_not_a_feed(self, store):
        orchestrator = RefreshOrchestrator(store)
        html = b"<!DOCTYPE html><html><head><title>Blog</title></head></html>"

        with patch(FETCH, AsyncMock(return_value=html)):
            with pytest.raises(NotFeed):
                await orchestrator.subscribe(A_URL)

        assert store.feeds == []

    async def test_subscribe_title_fallbacks(self, store):
        orchestrator = RefreshOrchestrator(store)
        untitled = rss_document(numbered_items(1), title="")

        with patch(FETCH, AsyncMock(return_value=untitled)):
            named = await orchestrator.subscribe(A_URL, title="From OPML")
            by_host = await orchestrator.subscribe(B_URL)

        assert named.title == "From OPML"
        assert by_host.title == "b.example.com"

    async def test_resubscribe_keeps_existing_title(self, store):
        orchestrator = RefreshOrchestrator(store)

        with patch(FETCH, AsyncMock(return_value=rss_document([], title="Original"))):
            first = await orchestrator.subscribe(A_URL)
        with patch(FETCH, AsyncMock(return_value=rss_document([], title="Renamed"))):
            second = await orchestrator.subscribe(A_URL + "/")

        assert second is first
        assert [f.title for f in store.feeds] == ["Original"]


class TestRefreshAll:
    """Tests for concurrent refresh of every feed."""

    async def test_failure_is_isolated(self, store):
        """Test that one failing feed does not affect the others."""
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, three_feeds(2))

        documents = three_feeds(3)
        documents[B_URL] = NetworkError(B_URL, "Connection refused")
        with patch(FETCH, fake_fetch(documents)):
            results = await orchestrator.refresh_all()

        by_feed = {r.feed_id: r for r in results}
        assert by_feed[A_URL].state is RefreshState.DONE
        assert by_feed[A_URL].new_articles == 1
        assert by_feed[C_URL].state is RefreshState.DONE
        assert by_feed[B_URL].state is RefreshState.FAILED
        assert "Connection refused" in by_feed[B_URL].error

        # The failed feed keeps its previous articles
        assert len(store.articles_for(A_URL)) == 3
        assert len(store.articles_for(B_URL)) == 2
        assert len(store.articles_for(C_URL)) == 3

    async def test_unchanged_refresh_is_idempotent(self, store):
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, three_feeds())
        before = list(store.articles)

        with patch(FETCH, fake_fetch(three_feeds())):
            results = await orchestrator.refresh_all()

        assert store.articles == before
        assert all(r.new_articles == 0 for r in results)

    async def test_state_preserved_across_refresh(self, store):
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, three_feeds())
        await store.toggle_star("https://a.example.com/posts/0")
        await store.set_read("https://b.example.com/posts/1", True)

        with patch(FETCH, fake_fetch(three_feeds())):
            await orchestrator.refresh_all()

        assert store.get_article("https://a.example.com/posts/0").is_starred
        assert store.get_article("https://b.example.com/posts/1").is_read

    async def test_removed_feed_state_survives_successful_refresh(self, store):
        """Test that read state of a removed feed is restored on re-subscribe after a clean refresh."""
        orchestrator = RefreshOrchestrator(store)
        documents = {
            A_URL: rss_document(numbered_items(2, "a.example.com"), title="Alpha"),
            B_URL: rss_document(numbered_items(2, "b.example.com"), title="Beta"),
        }
        await subscribe_all(orchestrator, documents)
        await store.set_read("https://a.example.com/posts/0", True)
        await store.delete_feed(A_URL)

        with patch(FETCH, fake_fetch(documents)):
            results = await orchestrator.refresh_all()
            await orchestrator.subscribe(A_URL)

        assert [r.state for r in results] == [RefreshState.DONE]
        assert store.get_article("https://a.example.com/posts/0").is_read

    async def test_state_kept_for_articles_that_drop_out(self, store):
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, {A_URL: rss_document(numbered_items(2, "a.example.com"))})
        await store.set_read("https://a.example.com/posts/0", True)

        # The article leaves the feed, then comes back
        replacement = rss_document([{"title": "New", "link": "https://a.example.com/new"}])
        with patch(FETCH, fake_fetch({A_URL: replacement})):
            await orchestrator.refresh_all()
        with patch(FETCH, fake_fetch({A_URL: rss_document(numbered_items(2, "a.example.com"))})):
            await orchestrator.refresh_all()

        assert store.get_article("https://a.example.com/posts/0").is_read

    async def test_removed_feed_is_not_resurrected(self, store):
        """Test that a feed removed while its fetch is in flight stays removed."""
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, three_feeds())
        documents = three_feeds(3)

        async def slow_fetch(url, client=None, timeout=None):
            if url == B_URL:
                await store.delete_feed(B_URL)
            return documents[url]

        with patch(FETCH, AsyncMock(side_effect=slow_fetch)):
            await orchestrator.refresh_all()

        assert B_URL not in {f.id for f in store.feeds}
        assert store.articles_for(B_URL) == []

    async def test_no_feeds(self, store):
        orchestrator = RefreshOrchestrator(store)

        assert await orchestrator.refresh_all() == []

    async def test_cancellation_discards_results(self, store):
        """Test that cancelling mid-refresh leaves the collection untouched."""
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, three_feeds(2))
        before = list(store.articles)
        documents = three_feeds(5)
        started = asyncio.Event()
        never = asyncio.Event()

        async def hanging_fetch(url, client=None, timeout=None):
            if url == C_URL:
                started.set()
                await never.wait()
            return documents[url]

        with patch(FETCH, AsyncMock(side_effect=hanging_fetch)):
            task = asyncio.ensure_future(orchestrator.refresh_all())
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert store.articles == before


class TestRefreshOne:
    """Tests for single-feed refresh."""

    async def test_refresh_one_counts_new(self, store):
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, {A_URL: rss_document(numbered_items(2, "a.example.com"))})

        with patch(FETCH, fake_fetch({A_URL: rss_document(numbered_items(5, "a.example.com"))})):
            new_articles = await orchestrator.refresh_one(store.get_feed(A_URL))

        assert new_articles == 3
        assert orchestrator.state_of(A_URL) is RefreshState.DONE

    async def test_refresh_one_propagates_errors(self, store):
        orchestrator = RefreshOrchestrator(store)
        await subscribe_all(orchestrator, {A_URL: rss_document(numbered_items(2, "a.example.com"))})

        with patch(FETCH, AsyncMock(side_effect=NetworkError(A_URL, "timed out"))):
            with pytest.raises(NetworkError):
                await orchestrator.refresh_one(store.get_feed(A_URL))

        assert orchestrator.state_of(A_URL) is RefreshState.FAILED
        assert len(store.articles_for(A_URL)) == 2

    async def test_item_cap_applied(self, store):
        orchestrator = RefreshOrchestrator(store, max_items=10)

        with patch(FETCH, fake_fetch({A_URL: rss_document(numbered_items(30, "a.example.com"))})):
            await orchestrator.subscribe(A_URL)

        assert len(store.articles) == 10


class TestImportOpml:
    """Tests for OPML import."""

    async def test_import_skips_failures(self, store):
        orchestrator = RefreshOrchestrator(store)
        opml = b"""<?xml version="1.0"?>
        <opml version="2.0">
            <body>
                <outline text="Alpha" xmlUrl="http://a.example.com/feed"/>
                <outline text="Tech">
                    <outline title="Beta" xmlUrl="https://b.example.com/feed"/>
                    <outline title="Gamma" xmlUrl="https://c.example.com/feed"/>
                </outline>
            </body>
        </opml>
        """
        documents = three_feeds()
        documents[C_URL] = BadStatus(404, C_URL)

        with patch(FETCH, fake_fetch(documents)):
            feeds = await orchestrator.import_opml(opml)

        assert sorted(f.id for f in feeds) == [A_URL, B_URL]
        assert [f.title for f in store.feeds] == ["Alpha", "Beta"]

    async def test_import_malformed_opml(self, store):
        orchestrator = RefreshOrchestrator(store)

        with pytest.raises(NotFeed):
            await orchestrator.import_opml(b"<opml><body><outline></opml>")
