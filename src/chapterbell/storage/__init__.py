"""Storage layer - store interface plus PostgreSQL and in-memory engines."""

from chapterbell.storage.base import ChapterStore, DestinationNotFoundError, StoreError
from chapterbell.storage.database import Database
from chapterbell.storage.memory import InMemoryStore
from chapterbell.storage.repository import PostgresStore

__all__ = [
    "ChapterStore",
    "Database",
    "DestinationNotFoundError",
    "InMemoryStore",
    "PostgresStore",
    "StoreError",
]
