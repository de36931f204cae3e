"""Semantic memory store.

Orchestrates the embedding gateway, the similarity ranker and a durable
``MemoryRepository``. Every memory is also mirrored into a per-scope
in-process list so retrieval can fall back to keyword, importance and
recency scoring when vector search yields nothing (for example while the
embedding provider is down and zero vectors were written).

The mirror is not durable: after a restart each scope is rebuilt with
``warm``, which runs lazily on the scope's first typed read.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Iterable

from loguru import logger

from .config import RetrievalConfig
from .embedding import EmbeddingGateway, is_zero
from .models import Memory, MemoryContext, MemoryKind, MemoryScope, ScoredMemory
from .retention import KeepForever, RetentionPolicy
from .similarity import rank
from .storage.interfaces import MemoryRepository

_SECONDS_PER_DAY = 60 * 60 * 24


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def recency_factor(created_at: datetime, now: datetime) -> float:
    """Linear decay over a year, floored at 0.1."""
    age_days = (now - created_at).total_seconds() / _SECONDS_PER_DAY
    return max(0.1, 1 - age_days / 365)


def fallback_score(
    memory: Memory,
    query: str,
    now: datetime,
    keyword_increment: float = 0.3,
    min_keyword_length: int = 3,
) -> float:
    """Keyword overlap scaled by importance and recency, capped at 1.0.

    Each lower-cased query token of at least ``min_keyword_length``
    characters found in the content adds ``keyword_increment``. A query
    with no usable tokens scores every memory one increment, so the
    ordering is decided by importance and recency alone.
    """
    keywords = [w for w in query.lower().split() if len(w) >= min_keyword_length]
    if keywords:
        content = memory.content.lower()
        score = sum(keyword_increment for k in keywords if k in content)
    else:
        score = keyword_increment

    score *= memory.importance / 10
    score *= recency_factor(memory.created_at, now)
    return min(score, 1.0)


class MemoryStore:
    """Stores and recalls scoped semantic memories.

    Attributes:
        gateway: Embedding gateway (never raises)
        repository: Durable memory repository
        retention: Policy applied by ``apply_retention``
    """

    def __init__(
        self,
        gateway: EmbeddingGateway,
        repository: MemoryRepository,
        config: RetrievalConfig | None = None,
        retention: RetentionPolicy | None = None,
        read_timeout_s: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.repository = repository
        self.config = config or RetrievalConfig()
        self.retention = retention or KeepForever()
        self.read_timeout_s = read_timeout_s
        self._clock = clock or _utcnow
        self._scoped: dict[str, list[Memory]] = {}
        self._warmed: set[str] = set()

        logger.debug(
            f"MemoryStore initialized: min_similarity={self.config.min_similarity}, "
            f"fetch_multiplier={self.config.fetch_multiplier}, "
            f"retention={self.retention.name}"
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def store(
        self,
        content: str,
        kind: MemoryKind,
        scope: MemoryScope,
        importance: int = 5,
        tags: Iterable[str] = (),
        context: MemoryContext | None = None,
    ) -> Memory | None:
        """Embed and persist a memory.

        A durable write failure is logged and swallowed; the memory is still
        mirrored and returned so the caller's primary action is unaffected.

        Returns:
            The stored memory, or None for a malformed scope
        """
        if not scope.is_valid():
            logger.warning("Refusing to store memory without an owner_user_id")
            return None

        embedding = await self.gateway.embed(content)
        now = self._clock()
        memory = Memory(
            owner_user_id=scope.owner_user_id,
            companion_id=scope.companion_id,
            document_id=scope.document_id,
            conversation_id=scope.conversation_id,
            kind=kind,
            content=content,
            embedding=embedding,
            importance=importance,
            tags=list(tags),
            context=context,
            created_at=now,
            last_accessed_at=now,
        )

        self._scoped.setdefault(scope.key, []).append(memory)

        try:
            await self.repository.insert_memory(memory)
        except Exception as e:
            logger.error(f"Failed to persist memory {memory.id}: {e}")

        logger.debug(
            f"Stored {memory.kind.value} memory {memory.id} for {scope.key} "
            f"(importance={memory.importance})"
        )
        return memory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        scope: MemoryScope,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> list[ScoredMemory]:
        """Recall memories relevant to ``query`` within ``scope``.

        Vector similarity over recent durable candidates first; when that
        yields nothing, the keyword/importance/recency fallback scorer runs
        over the scope's mirrored memories.
        """
        if not scope.is_valid():
            logger.warning("Refusing to retrieve memories without an owner_user_id")
            return []

        limit = self.config.top_k if limit is None else limit
        if limit <= 0:
            return []
        floor = self.config.min_similarity if min_similarity is None else min_similarity

        query_vector = await self.gateway.embed(query)
        candidates = [
            m
            for m in await self._fetch_candidates(scope, limit * self.config.fetch_multiplier)
            if m.in_scope(scope)
        ]

        results: list[ScoredMemory] = []
        if not is_zero(query_vector):
            results = rank(query_vector, candidates, floor, limit)

        if not results:
            results = self._fallback(query, scope, candidates, limit)

        await self._touch(results)
        return results

    async def get_memories_by_type(
        self, scope: MemoryScope, kind: MemoryKind, limit: int = 20
    ) -> list[Memory]:
        """Mirrored memories of one kind, most important first.

        The scope is warmed from durable storage on its first typed read.
        """
        if scope.is_valid() and scope.key not in self._warmed:
            await self.warm(scope)

        memories = [
            m
            for m in self._scoped.get(scope.key, [])
            if m.kind == kind and m.in_scope(scope)
        ]
        memories.sort(key=lambda m: m.importance, reverse=True)
        return memories[: max(limit, 0)]

    async def _fetch_candidates(self, scope: MemoryScope, limit: int) -> list[Memory]:
        try:
            return await asyncio.wait_for(
                self.repository.query_memories(
                    scope.owner_user_id,
                    companion_id=scope.companion_id,
                    document_id=scope.document_id,
                    limit=limit,
                ),
                timeout=self.read_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Memory query timed out after {self.read_timeout_s}s")
        except Exception as e:
            logger.warning(f"Memory query failed: {e}")
        return []

    def _fallback(
        self,
        query: str,
        scope: MemoryScope,
        candidates: list[Memory],
        limit: int,
    ) -> list[ScoredMemory]:
        pool: dict[str, Memory] = {}
        for memory in [*self._scoped.get(scope.key, []), *candidates]:
            if memory.in_scope(scope):
                pool.setdefault(memory.id, memory)

        now = self._clock()
        scored = []
        for memory in pool.values():
            score = fallback_score(
                memory,
                query,
                now,
                keyword_increment=self.config.keyword_increment,
                min_keyword_length=self.config.min_keyword_length,
            )
            if score > self.config.fallback_threshold:
                scored.append(ScoredMemory(memory=memory, score=score, source="fallback"))

        scored.sort(key=lambda s: (s.score, s.memory.created_at.timestamp()), reverse=True)
        if scored:
            logger.debug(f"Fallback scorer returned {min(len(scored), limit)} memories for {scope.key}")
        return scored[:limit]

    async def _touch(self, results: list[ScoredMemory]) -> None:
        if not results:
            return
        now = self._clock()
        for item in results:
            item.memory.last_accessed_at = now
        try:
            await self.repository.touch_memories([item.memory.id for item in results])
        except Exception as e:
            logger.warning(f"Failed to update memory access times: {e}")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def warm(self, scope: MemoryScope, limit: int = 500) -> int:
        """Rebuild the scope's mirror from durable storage.

        Memories already mirrored in this process are kept, so a failed
        read never empties the mirror. A scope is only marked warm once
        a read succeeds; until then typed reads keep retrying.

        Returns:
            Number of mirrored memories
        """
        if not scope.is_valid():
            return 0

        try:
            fetch_limit = limit
            if not scope.companion_id:
                # the repository cannot filter on a missing companion, so
                # read every owner row before dropping companion memories
                fetch_limit = max(
                    limit,
                    await asyncio.wait_for(
                        self.repository.count_memories(scope.owner_user_id),
                        timeout=self.read_timeout_s,
                    ),
                )
            memories = await asyncio.wait_for(
                self.repository.query_memories(
                    scope.owner_user_id,
                    companion_id=scope.companion_id,
                    limit=fetch_limit,
                ),
                timeout=self.read_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Warming {scope.key} timed out after {self.read_timeout_s}s")
            return len(self._scoped.get(scope.key, []))
        except Exception as e:
            logger.warning(f"Warming {scope.key} failed: {e}")
            return len(self._scoped.get(scope.key, []))

        if not scope.companion_id:
            memories = [m for m in memories if not m.companion_id]
        memories = [m for m in memories if m.owner_user_id == scope.owner_user_id]
        memories.sort(key=lambda m: m.created_at, reverse=True)
        memories = memories[: max(limit, 0)]

        fetched = {m.id for m in memories}
        memories.extend(m for m in self._scoped.get(scope.key, []) if m.id not in fetched)

        # mirror is kept in append (oldest first) order
        memories.sort(key=lambda m: m.created_at)
        self._scoped[scope.key] = memories
        self._warmed.add(scope.key)
        logger.info(f"Warmed {len(memories)} memories for {scope.key}")
        return len(memories)

    async def apply_retention(self, scope: MemoryScope) -> int:
        """Run the retention policy over the owner's memories.

        Returns:
            Number of deleted memories
        """
        if not scope.is_valid():
            return 0

        try:
            total = await self.repository.count_memories(scope.owner_user_id)
            memories = await self.repository.query_memories(scope.owner_user_id, limit=total)
            expired = self.retention.select_expired(memories, self._clock())
            deleted = await self.repository.delete_memories(expired) if expired else 0
        except Exception as e:
            logger.error(f"Retention pass failed for {scope.owner_user_id}: {e}")
            return 0

        if expired:
            gone = set(expired)
            prefix = f"{scope.owner_user_id}:"
            for key, memories in self._scoped.items():
                if key == scope.owner_user_id or key.startswith(prefix):
                    self._scoped[key] = [m for m in memories if m.id not in gone]
            logger.info(
                f"Retention ({self.retention.name}) removed {deleted} memories "
                f"for {scope.owner_user_id}"
            )
        return deleted

    def mirrored_count(self, scope: MemoryScope) -> int:
        return len(self._scoped.get(scope.key, []))
