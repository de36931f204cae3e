"""Durable storage backends for the memory core.

``SQLiteMemoryRepository`` is the production backend;
``InMemoryRepository`` serves tests and development.
"""

from __future__ import annotations

from .interfaces import MemoryRepository
from .memory_repository import InMemoryRepository
from .sqlite_store import SQLiteMemoryRepository

__all__ = ["MemoryRepository", "InMemoryRepository", "SQLiteMemoryRepository"]
