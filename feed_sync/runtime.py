"""Startup wiring for feed_sync.

Builds the repository, FeedStore and RefreshOrchestrator once and hands the
same instances to every tool.
"""

import asyncio
import logging
from typing import Optional

from feed_sync.config import ServerConfig
from feed_sync.services.fetcher import build_client
from feed_sync.services.orchestrator import RefreshOrchestrator
from feed_sync.services.state_store import FeedStore, FeedRepository
from feed_sync.storage.database import SQLiteRepository

logger = logging.getLogger(__name__)


class FeedRuntime:
    """Owns the long-lived collaborators of a running server."""

    def __init__(self, config: ServerConfig, repository: Optional[FeedRepository] = None):
        self.config = config
        self.repository = repository or SQLiteRepository(config.db_path)
        self.store = FeedStore(
            self.repository,
            max_articles_per_feed=config.max_articles_per_feed,
        )
        self.orchestrator = RefreshOrchestrator(
            self.store,
            timeout=config.request_timeout,
            max_items=config.max_items_per_feed,
        )
        self._started = False
        self._start_lock = asyncio.Lock()

    async def start(self) -> "FeedRuntime":
        """Load persisted state and open the shared HTTP client. Idempotent."""
        async with self._start_lock:
            if not self._started:
                await self.store.load()
                self.orchestrator.client = build_client(
                    timeout=self.config.request_timeout,
                    user_agent=self.config.user_agent,
                )
                self._started = True
                logger.info("Feed runtime started")
        return self

    async def close(self) -> None:
        if self.orchestrator.client is not None:
            await self.orchestrator.client.aclose()
            self.orchestrator.client = None
        close = getattr(self.repository, "close", None)
        if close is not None:
            await close()
        self._started = False
