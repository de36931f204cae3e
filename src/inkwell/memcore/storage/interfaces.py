"""Durable memory store interface.

Defined as a Protocol so the memory core does not depend on a concrete
backend.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models import Memory


@runtime_checkable
class MemoryRepository(Protocol):
    """Durable store for semantic memories."""

    async def insert_memory(self, memory: Memory) -> None:
        """Persist a new memory record."""
        ...

    async def query_memories(
        self,
        owner_user_id: str,
        companion_id: str | None = None,
        document_id: str | None = None,
        limit: int = 30,
    ) -> list[Memory]:
        """
        Fetch an owner's memories, newest first.

        Args:
            owner_user_id: Required tenant key
            companion_id: Optional narrowing filter
            document_id: Optional narrowing filter
            limit: Maximum number of records

        Returns:
            Memories ordered by ``created_at`` descending
        """
        ...

    async def touch_memories(self, memory_ids: list[str]) -> None:
        """Set ``last_accessed_at`` to now for the given memories."""
        ...

    async def delete_memories(self, memory_ids: list[str]) -> int:
        """Delete memories by id and return how many were removed."""
        ...

    async def count_memories(self, owner_user_id: str) -> int:
        ...
