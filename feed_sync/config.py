"""Configuration management for feed_sync.

All configuration comes from environment variables prefixed with FEED_SYNC_.
Uses pydantic-settings so malformed values fail at startup rather than in the
middle of a refresh.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_path() -> str:
    return str(Path.home() / ".feed_sync" / "feed_sync.db")


class ServerConfig(BaseSettings):
    """Server configuration loaded from environment variables."""

    name: str = "feed_sync"
    log_level: str = "INFO"
    db_path: str = Field(default_factory=_default_db_path)
    request_timeout: float = Field(default=30.0, gt=0)
    max_items_per_feed: int = Field(default=50, gt=0)
    max_articles_per_feed: int = Field(default=100, gt=0)
    user_agent: str = "FeedSync/1.0 (RSS Feed Reader)"

    model_config = SettingsConfigDict(
        env_prefix="FEED_SYNC_",
        extra="ignore",
    )


def load_config() -> ServerConfig:
    """Load and validate config from environment."""
    return ServerConfig()


@lru_cache(maxsize=1)
def get_config() -> ServerConfig:
    """Return the process-wide config, loading it on first use."""
    return load_config()
