"""In-process memory repository for tests and development."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger

from ..models import Memory


class InMemoryRepository:
    """Dictionary-backed ``MemoryRepository``. Nothing survives the process."""

    def __init__(self):
        self._memories: dict[str, Memory] = {}

    async def insert_memory(self, memory: Memory) -> None:
        self._memories[memory.id] = memory.model_copy(deep=True)
        logger.debug(f"Memory inserted: {memory.id}")

    async def query_memories(
        self,
        owner_user_id: str,
        companion_id: str | None = None,
        document_id: str | None = None,
        limit: int = 30,
    ) -> list[Memory]:
        matches = [
            m
            for m in self._memories.values()
            if m.owner_user_id == owner_user_id
            and (not companion_id or m.companion_id == companion_id)
            and (not document_id or m.document_id == document_id)
        ]
        matches.sort(key=lambda m: m.created_at, reverse=True)
        return [m.model_copy(deep=True) for m in matches[: max(limit, 0)]]

    async def touch_memories(self, memory_ids: list[str]) -> None:
        now = datetime.now(timezone.utc)
        for memory_id in memory_ids:
            memory = self._memories.get(memory_id)
            if memory is not None:
                memory.last_accessed_at = now

    async def delete_memories(self, memory_ids: list[str]) -> int:
        deleted = 0
        for memory_id in memory_ids:
            if self._memories.pop(memory_id, None) is not None:
                deleted += 1
        return deleted

    async def count_memories(self, owner_user_id: str) -> int:
        return sum(1 for m in self._memories.values() if m.owner_user_id == owner_user_id)
