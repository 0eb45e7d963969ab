"""Storage layer for ledgermatch."""

from ledgermatch.database.base import PageCursor, Repository
from ledgermatch.database.factories import create_sqlite_repository
from ledgermatch.database.memory import InMemoryRepository

__all__ = ["PageCursor", "Repository", "InMemoryRepository", "create_sqlite_repository"]
