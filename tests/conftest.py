"""Shared fixtures and feed document builders for feed_sync tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from feed_sync.services.state_store import FeedStore
from feed_sync.storage.database import SQLiteRepository


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def repository():
    """SQLite repository on an in-memory database."""
    repo = SQLiteRepository(":memory:")
    await repo.connect()
    yield repo
    await repo.close()


@pytest.fixture
async def store(repository):
    """Empty FeedStore backed by the in-memory repository."""
    feed_store = FeedStore(repository, max_articles_per_feed=100)
    await feed_store.load()
    return feed_store


BASE_DATE = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def rfc822(value: datetime) -> str:
    return value.strftime("%a, %d %b %Y %H:%M:%S +0000")


def rss_document(
    items: List[Dict[str, str]],
    title: str = "Test Blog",
    extra_channel: str = "",
) -> bytes:
    """Build an RSS 2.0 document from item dicts (title, link, pubDate, description)."""
    rendered = []
    for item in items:
        parts = [f"<title>{item.get('title', '')}</title>"]
        if "link" in item:
            parts.append(f"<link>{item['link']}</link>")
        if "pubDate" in item:
            parts.append(f"<pubDate>{item['pubDate']}</pubDate>")
        if "description" in item:
            parts.append(f"<description><![CDATA[{item['description']}]]></description>")
        rendered.append("<item>" + "".join(parts) + "</item>")

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>{title}</title>
        {extra_channel}
        {"".join(rendered)}
    </channel>
</rss>
""".encode("utf-8")


def numbered_items(
    count: int,
    host: str = "example.com",
    title_prefix: str = "Post",
    start: Optional[datetime] = None,
) -> List[Dict[str, str]]:
    """Items whose publish dates increase with their number."""
    start = start or BASE_DATE
    return [
        {
            "title": f"{title_prefix} {n}",
            "link": f"https://{host}/posts/{n}",
            "pubDate": rfc822(start + timedelta(hours=n)),
        }
        for n in range(count)
    ]
