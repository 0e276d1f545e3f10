"""Unit tests for the merge engine."""

from datetime import timedelta

from feed_sync.models.schemas import Article, ArticleState, Feed, FeedItem
from feed_sync.services.merge import merge_feed, sort_articles, upsert_feed
from tests.conftest import BASE_DATE


def _feed(feed_id="https://example.com/feed", title="Example"):
    return Feed(id=feed_id, title=title, url=feed_id, added_at=BASE_DATE)


def _items(count, host="example.com"):
    return [
        FeedItem(
            title=f"Post {n}",
            link=f"https://{host}/posts/{n}",
            published_at=BASE_DATE + timedelta(hours=n),
        )
        for n in range(count)
    ]


class TestMergeFeed:
    """Tests for merging parsed items into the collection."""

    def test_first_merge_adds_feed_and_articles(self):
        feed = _feed()

        result = merge_feed(feed, _items(3), [], {}, [])

        assert result.feed is feed
        assert result.feeds == [feed]
        assert len(result.articles) == 3
        assert result.new_articles == 3
        # Newest first
        assert [a.title for a in result.articles] == ["Post 2", "Post 1", "Post 0"]

    def test_merge_is_idempotent(self):
        """Test that re-merging an unchanged parse leaves the collection unchanged."""
        feed = _feed()
        first = merge_feed(feed, _items(5), [], {}, [])

        second = merge_feed(feed, _items(5), first.articles, {}, first.feeds)

        assert second.articles == first.articles
        assert second.feeds == first.feeds
        assert second.new_articles == 0

    def test_state_carried_forward_by_normalized_link(self):
        """Test that read/starred state survives a link that gained tracking params."""
        feed = _feed()
        states = {
            "https://example.com/posts/1": ArticleState(is_read=True, is_starred=True),
        }
        items = _items(2)
        items[1].link = "https://example.com/posts/1/?utm_source=rss"

        result = merge_feed(feed, items, [], states, [])

        by_id = {a.id: a for a in result.articles}
        assert by_id["https://example.com/posts/1"].is_read
        assert by_id["https://example.com/posts/1"].is_starred
        assert not by_id["https://example.com/posts/0"].is_read

    def test_retention_cap_keeps_newest(self):
        """Test that at most max_articles newest articles are kept per feed."""
        feed = _feed()

        result = merge_feed(feed, _items(150), [], {}, [], max_articles=100)

        assert len(result.articles) == 100
        assert result.articles[0].title == "Post 149"
        assert result.articles[-1].title == "Post 50"

    def test_duplicate_links_keep_first(self):
        feed = _feed()
        items = _items(1) + [FeedItem(title="Duplicate", link="https://example.com/posts/0#again")]

        result = merge_feed(feed, items, [], {}, [])

        assert len(result.articles) == 1
        assert result.articles[0].title == "Post 0"

    def test_missing_date_uses_merge_time(self):
        feed = _feed()
        now = BASE_DATE + timedelta(days=30)
        items = [FeedItem(title="Undated", link="https://example.com/undated")]

        result = merge_feed(feed, items, [], {}, [], now=now)

        assert result.articles[0].published_at == now

    def test_other_feeds_untouched(self):
        """Test that articles of other feeds survive and the feed's old articles are replaced."""
        a = _feed("https://a.example.com/feed", "Alpha")
        b = _feed("https://b.example.com/feed", "Beta")
        merged_a = merge_feed(a, _items(3, "a.example.com"), [], {}, [])
        merged_b = merge_feed(b, _items(2, "b.example.com"), merged_a.articles, {}, merged_a.feeds)

        refreshed = merge_feed(a, _items(1, "a.example.com"), merged_b.articles, {}, merged_b.feeds)

        assert len([x for x in refreshed.articles if x.feed_id == a.id]) == 1
        assert len([x for x in refreshed.articles if x.feed_id == b.id]) == 2
        assert refreshed.articles == sort_articles(refreshed.articles)


class TestUpsertFeed:
    """Tests for feed list maintenance."""

    def test_existing_feed_keeps_title(self):
        existing = _feed(title="My Name")
        incoming = _feed(title="Publisher Name")

        stored, feeds = upsert_feed(incoming, [existing])

        assert stored is existing
        assert feeds == [existing]

    def test_new_feeds_sorted_by_title(self):
        zeta = _feed("https://z.example.com/feed", "zeta")
        alpha = _feed("https://a.example.com/feed", "Alpha")
        beta = _feed("https://b.example.com/feed", "beta")

        _, feeds = upsert_feed(beta, [zeta, alpha])

        assert [f.title for f in feeds] == ["Alpha", "beta", "zeta"]


class TestSortArticles:
    def test_ties_keep_order(self):
        articles = [
            Article(id=str(n), feed_id="f", title=str(n), link=str(n), published_at=BASE_DATE)
            for n in range(3)
        ]

        assert sort_articles(articles) == articles
