"""Database storage for feed_sync.

This module provides async SQLite persistence for subscribed feeds and
per-article read/starred state. The live article collection itself is held
in memory and rebuilt by refreshing feeds.

Database location: ~/.feed_sync/feed_sync.db (or FEED_SYNC_DB_PATH env var)
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import aiosqlite

from feed_sync.models.schemas import ArticleState, Feed

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


async def init_database(db: aiosqlite.Connection) -> None:
    """Initialize database tables if they don't exist.

    Args:
        db: Open database connection
    """
    await db.execute("""
        CREATE TABLE IF NOT EXISTS feeds (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            url TEXT NOT NULL,
            thumbnail_url TEXT,
            added_at TIMESTAMP NOT NULL
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS article_states (
            article_id TEXT PRIMARY KEY,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            is_starred BOOLEAN NOT NULL DEFAULT FALSE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_article_states_is_starred
        ON article_states(is_starred)
    """)

    await db.commit()


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteRepository:
    """Persistence collaborator backed by a single aiosqlite connection.

    Create once at startup, call connect(), then inject into the FeedStore.
    """

    def __init__(self, db_path: str = MEMORY_PATH):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def connect(self) -> aiosqlite.Connection:
        """Open the connection and create tables on first use."""
        if self._db is None:
            if self.db_path != MEMORY_PATH:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row
            await init_database(self._db)
            logger.info(f"Opened database at {self.db_path}")

        return self._db

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def load_feeds(self) -> List[Feed]:
        """Load all subscribed feeds."""
        db = await self.connect()

        cursor = await db.execute("SELECT * FROM feeds")
        feeds = []
        async for row in cursor:
            feeds.append(Feed(
                id=row["id"],
                title=row["title"],
                url=row["url"],
                thumbnail_url=row["thumbnail_url"],
                added_at=_parse_timestamp(row["added_at"]),
            ))

        return feeds

    async def save_feeds(self, feeds: Sequence[Feed]) -> None:
        """Replace the stored feed list.

        Args:
            feeds: Complete list of subscribed feeds
        """
        db = await self.connect()

        await db.execute("DELETE FROM feeds")
        await db.executemany(
            """
            INSERT INTO feeds (id, title, url, thumbnail_url, added_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (f.id, f.title, f.url, f.thumbnail_url, f.added_at.isoformat())
                for f in feeds
            ],
        )
        await db.commit()

    async def load_article_states(self) -> Dict[str, ArticleState]:
        """Load the read/starred state map keyed by article id."""
        db = await self.connect()

        cursor = await db.execute("SELECT * FROM article_states")
        states = {}
        async for row in cursor:
            states[row["article_id"]] = ArticleState(
                is_read=bool(row["is_read"]),
                is_starred=bool(row["is_starred"]),
            )

        return states

    async def save_article_states(self, states: Mapping[str, ArticleState]) -> None:
        """Replace the stored read/starred state map.

        Args:
            states: Complete state map keyed by article id
        """
        db = await self.connect()

        await db.execute("DELETE FROM article_states")
        await db.executemany(
            """
            INSERT INTO article_states (article_id, is_read, is_starred)
            VALUES (?, ?, ?)
            """,
            [
                (article_id, state.is_read, state.is_starred)
                for article_id, state in states.items()
            ],
        )
        await db.commit()
