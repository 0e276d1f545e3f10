"""Storage layer for feed_sync."""

from .database import SQLiteRepository, init_database

__all__ = [
    "SQLiteRepository",
    "init_database",
]
