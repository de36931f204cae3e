"""Tests for MemoryStore storage, vector retrieval and the fallback scorer."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from inkwell.memcore.config import RetrievalConfig
from inkwell.memcore.embedding import EmbeddingGateway
from inkwell.memcore.memory_store import MemoryStore, fallback_score, recency_factor
from inkwell.memcore.models import Memory, MemoryKind, MemoryScope, PreferenceSource
from inkwell.memcore.retention import MaxCountRetention
from inkwell.memcore.storage import InMemoryRepository

DIMENSION = 4
NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


class StepClock:
    """Datetime clock that moves forward one minute per call."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


class SlowRepository(InMemoryRepository):
    async def query_memories(self, *args, **kwargs):
        await asyncio.sleep(1)
        return await super().query_memories(*args, **kwargs)


def _memory(content="m", importance=5, age_days=0.0) -> Memory:
    return Memory(
        owner_user_id="u",
        kind=MemoryKind.FACTUAL,
        content=content,
        importance=importance,
        created_at=NOW - timedelta(days=age_days),
    )


# ---------------------------------------------------------------------------
# Fallback scoring
# ---------------------------------------------------------------------------


class TestFallbackScore:
    def test_recency_decays_linearly_with_floor(self):
        assert recency_factor(NOW, NOW) == 1.0
        assert recency_factor(NOW - timedelta(days=182.5), NOW) == pytest.approx(0.5)
        assert recency_factor(NOW - timedelta(days=1000), NOW) == 0.1

    def test_keyword_matches_accumulate(self):
        memory = _memory("dragons live in the old castle", importance=10)
        assert fallback_score(memory, "dragons", NOW) == pytest.approx(0.3)
        assert fallback_score(memory, "dragons castle", NOW) == pytest.approx(0.6)

    def test_short_tokens_are_ignored(self):
        memory = _memory("an ox is here", importance=10)
        # every token is shorter than three characters, so it scores as an empty query
        assert fallback_score(memory, "an ox", NOW) == pytest.approx(0.3)

    def test_non_matching_keywords_score_zero(self):
        memory = _memory("coffee", importance=10)
        assert fallback_score(memory, "dragons", NOW) == 0.0

    def test_score_is_capped(self):
        memory = _memory("alpha beta gamma delta epsilon", importance=10)
        assert fallback_score(memory, "alpha beta gamma delta epsilon", NOW) == 1.0

    def test_importance_and_age_scale_score(self):
        fresh = _memory("dragons", importance=10)
        old = _memory("dragons", importance=10, age_days=365)
        weak = _memory("dragons", importance=1)
        assert fallback_score(old, "dragons", NOW) == pytest.approx(0.03)
        assert fallback_score(weak, "dragons", NOW) == pytest.approx(0.03)
        assert fallback_score(fresh, "dragons", NOW) == pytest.approx(0.3)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestStore:
    async def test_store_persists_and_mirrors(self, vector_store, repository, scope):
        memory = await vector_store.store(
            "I love dragons", MemoryKind.PREFERENCE, scope, importance=7, tags=["likes"]
        )

        assert memory is not None
        assert memory.owner_user_id == "user-a"
        assert memory.companion_id == "luna"
        assert memory.embedding == [1.0, 0.0, 0.0, 0.1]
        assert vector_store.mirrored_count(scope) == 1
        assert await repository.count_memories("user-a") == 1

    async def test_invalid_scope_is_refused(self, vector_store, repository):
        result = await vector_store.store(
            "content", MemoryKind.FACTUAL, MemoryScope(owner_user_id="  ")
        )
        assert result is None
        assert await repository.count_memories("  ") == 0

    async def test_repository_failure_is_swallowed(self, keyword_provider, scope):
        repository = AsyncMock()
        repository.insert_memory.side_effect = RuntimeError("disk full")
        store = MemoryStore(EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository)

        memory = await store.store("I love dragons", MemoryKind.PERSONAL, scope)

        assert memory is not None
        assert store.mirrored_count(scope) == 1

    async def test_failing_provider_stores_zero_vector(self, degraded_store, scope):
        memory = await degraded_store.store("I love dragons", MemoryKind.PERSONAL, scope)
        assert memory.embedding == [0.0] * DIMENSION

    async def test_importance_is_clamped(self, vector_store, scope):
        memory = await vector_store.store("x", MemoryKind.FACTUAL, scope, importance=42)
        assert memory.importance == 10


# ---------------------------------------------------------------------------
# Retrieve
# ---------------------------------------------------------------------------


class TestRetrieve:
    async def test_vector_path_ranks_by_similarity(self, vector_store, scope):
        await vector_store.store("I love dragons", MemoryKind.PREFERENCE, scope)
        await vector_store.store("Coffee every morning", MemoryKind.PERSONAL, scope)

        results = await vector_store.retrieve("tell me about dragons", scope)

        assert [r.memory.content for r in results] == ["I love dragons"]
        assert results[0].source == "vector"
        assert results[0].score == pytest.approx(1.0)

    async def test_tenant_isolation(self, vector_store):
        scope_a = MemoryScope(owner_user_id="user-a", companion_id="luna")
        scope_b = MemoryScope(owner_user_id="user-b", companion_id="luna")
        await vector_store.store("user a loves dragons", MemoryKind.PERSONAL, scope_a)
        await vector_store.store("user b also loves dragons", MemoryKind.PERSONAL, scope_b)

        results_b = await vector_store.retrieve("dragons", scope_b)
        fallback_b = await vector_store.retrieve("", scope_b)

        assert results_b
        assert all(r.memory.owner_user_id == "user-b" for r in results_b)
        assert all(r.memory.owner_user_id == "user-b" for r in fallback_b)

    async def test_failing_provider_falls_back_to_keywords(self, degraded_store, scope):
        await degraded_store.store("I love dragons", MemoryKind.PERSONAL, scope)
        await degraded_store.store("Coffee every morning", MemoryKind.PERSONAL, scope)

        results = await degraded_store.retrieve("dragons", scope)

        assert [r.memory.content for r in results] == ["I love dragons"]
        assert results[0].source == "fallback"
        assert results[0].score == pytest.approx(0.15, abs=0.01)

    async def test_empty_query_ranks_by_importance(self, degraded_store, scope):
        for importance in (2, 5, 9):
            await degraded_store.store(
                f"memory with importance {importance}", MemoryKind.FACTUAL, scope, importance
            )

        results = await degraded_store.retrieve("", scope)

        # importance 2 scores ~0.06, under the 0.1 fallback threshold
        assert [r.memory.importance for r in results] == [9, 5]

    async def test_read_timeout_uses_mirror(self, keyword_provider, scope):
        store = MemoryStore(
            EmbeddingGateway(keyword_provider, dimension=DIMENSION),
            SlowRepository(),
            read_timeout_s=0.01,
        )
        await store.store("I love dragons", MemoryKind.PERSONAL, scope)

        results = await store.retrieve("dragons", scope)

        assert [r.memory.content for r in results] == ["I love dragons"]
        assert results[0].source == "fallback"

    async def test_limit_and_invalid_scope(self, vector_store, scope):
        for i in range(5):
            await vector_store.store(f"dragon fact {i}", MemoryKind.FACTUAL, scope)

        assert len(await vector_store.retrieve("dragon", scope, limit=2)) == 2
        assert await vector_store.retrieve("dragon", scope, limit=0) == []
        assert await vector_store.retrieve("dragon", MemoryScope(owner_user_id="")) == []

    async def test_min_similarity_override(self, vector_store, scope):
        await vector_store.store("dragon and coffee", MemoryKind.FACTUAL, scope)
        # similarity to a pure dragon query is about 0.71
        strict = await vector_store.retrieve("dragon", scope, min_similarity=0.9)
        assert [r.source for r in strict] == ["fallback"]

        vector_hits = await vector_store.retrieve("dragon", scope, min_similarity=0.5)
        assert vector_hits[0].source == "vector"

    async def test_retrieval_touches_memories(self, keyword_provider, repository, scope):
        clock = StepClock()
        store = MemoryStore(
            EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository, clock=clock
        )
        memory = await store.store("I love dragons", MemoryKind.PERSONAL, scope)
        created = memory.last_accessed_at

        results = await store.retrieve("dragons", scope)

        assert results[0].memory.last_accessed_at > created

    async def test_companion_scope_narrows_results(self, vector_store):
        with_luna = MemoryScope(owner_user_id="user-a", companion_id="luna")
        with_sol = MemoryScope(owner_user_id="user-a", companion_id="sol")
        await vector_store.store("dragons with luna", MemoryKind.RELATIONSHIP, with_luna)
        await vector_store.store("dragons with sol", MemoryKind.RELATIONSHIP, with_sol)

        results = await vector_store.retrieve("dragons", with_sol)
        assert [r.memory.content for r in results] == ["dragons with sol"]

    async def test_fetch_multiplier_bounds_candidate_query(self, keyword_provider, scope):
        repository = AsyncMock()
        repository.query_memories.return_value = []
        store = MemoryStore(
            EmbeddingGateway(keyword_provider, dimension=DIMENSION),
            repository,
            config=RetrievalConfig(top_k=4, fetch_multiplier=5),
        )

        await store.retrieve("dragons", scope)

        repository.query_memories.assert_awaited_once_with(
            "user-a", companion_id="luna", document_id=None, limit=20
        )


# ---------------------------------------------------------------------------
# Typed reads and maintenance
# ---------------------------------------------------------------------------


class TestMaintenance:
    async def test_get_memories_by_type(self, vector_store, scope):
        await vector_store.store("likes tea", MemoryKind.PREFERENCE, scope, importance=3)
        await vector_store.store(
            "likes dragons",
            MemoryKind.PREFERENCE,
            scope,
            importance=8,
            context=PreferenceSource(preference_type="likes"),
        )
        await vector_store.store("age 30", MemoryKind.PERSONAL, scope)

        preferences = await vector_store.get_memories_by_type(scope, MemoryKind.PREFERENCE)

        assert [m.content for m in preferences] == ["likes dragons", "likes tea"]
        assert preferences[0].context.preference_type == "likes"
        assert len(await vector_store.get_memories_by_type(scope, MemoryKind.PREFERENCE, 1)) == 1

    async def test_warm_rebuilds_mirror(self, vector_store, keyword_provider, repository, scope):
        await vector_store.store("I love dragons", MemoryKind.PERSONAL, scope)
        await vector_store.store("solo note", MemoryKind.FACTUAL, MemoryScope(owner_user_id="user-a"))

        restarted = MemoryStore(EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository)
        assert restarted.mirrored_count(scope) == 0

        assert await restarted.warm(scope) == 1
        assert await restarted.warm(MemoryScope(owner_user_id="user-a")) == 1
        personal = await restarted.get_memories_by_type(scope, MemoryKind.PERSONAL)
        assert [m.content for m in personal] == ["I love dragons"]

    async def test_first_typed_read_warms_scope(
        self, vector_store, keyword_provider, repository, scope
    ):
        await vector_store.store("likes dragons", MemoryKind.PREFERENCE, scope)

        restarted = MemoryStore(EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository)
        preferences = await restarted.get_memories_by_type(scope, MemoryKind.PREFERENCE)

        assert [m.content for m in preferences] == ["likes dragons"]
        assert restarted.mirrored_count(scope) == 1

    async def test_failed_warm_keeps_mirror_and_retries(self, keyword_provider, scope):
        repository = InMemoryRepository()
        store = MemoryStore(EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository)
        await store.store("likes tea", MemoryKind.PREFERENCE, scope)
        repository.query_memories = AsyncMock(side_effect=RuntimeError("db gone"))

        preferences = await store.get_memories_by_type(scope, MemoryKind.PREFERENCE)
        assert [m.content for m in preferences] == ["likes tea"]

        del repository.query_memories
        assert await store.get_memories_by_type(scope, MemoryKind.PREFERENCE)
        assert await store.warm(scope) == 1

    async def test_warm_without_companion_is_not_starved(
        self, vector_store, keyword_provider, repository, scope
    ):
        for i in range(5):
            await vector_store.store(f"companion note {i}", MemoryKind.FACTUAL, scope)
        solo = MemoryScope(owner_user_id="user-a")
        await vector_store.store("solo note", MemoryKind.FACTUAL, solo)
        for i in range(5):
            await vector_store.store(f"late companion note {i}", MemoryKind.FACTUAL, scope)

        restarted = MemoryStore(EmbeddingGateway(keyword_provider, dimension=DIMENSION), repository)

        assert await restarted.warm(solo, limit=2) == 1
        facts = await restarted.get_memories_by_type(solo, MemoryKind.FACTUAL)
        assert [m.content for m in facts] == ["solo note"]

    async def test_apply_retention_prunes_oldest(self, keyword_provider, repository, scope):
        store = MemoryStore(
            EmbeddingGateway(keyword_provider, dimension=DIMENSION),
            repository,
            retention=MaxCountRetention(1),
            clock=StepClock(),
        )
        for content in ("first", "second", "third"):
            await store.store(content, MemoryKind.FACTUAL, scope)

        assert await store.apply_retention(scope) == 2
        assert await repository.count_memories("user-a") == 1
        remaining = await store.get_memories_by_type(scope, MemoryKind.FACTUAL)
        assert [m.content for m in remaining] == ["third"]

    async def test_default_retention_keeps_everything(self, vector_store, repository, scope):
        await vector_store.store("keep me", MemoryKind.FACTUAL, scope)
        assert await vector_store.apply_retention(scope) == 0
        assert await repository.count_memories("user-a") == 1
