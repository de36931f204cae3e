"""
Tests for SQLiteMemoryRepository.

Uses a temporary database file per test.
"""

from datetime import datetime, timedelta, timezone

import pytest

from inkwell.memcore.models import Memory, MemoryKind, PreferenceSource, StorySource
from inkwell.memcore.storage import SQLiteMemoryRepository

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def repo(tmp_path):
    repository = SQLiteMemoryRepository(db_path=str(tmp_path / "nested" / "memories.db"))
    await repository.initialize()
    yield repository
    await repository.close()


def _memory(content: str, minutes: int = 0, **kwargs) -> Memory:
    fields = {
        "owner_user_id": "user-a",
        "kind": MemoryKind.FACTUAL,
        "content": content,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
        "last_accessed_at": BASE_TIME + timedelta(minutes=minutes),
    }
    fields.update(kwargs)
    return Memory(**fields)


async def test_requires_initialize(tmp_path):
    repository = SQLiteMemoryRepository(db_path=str(tmp_path / "m.db"))
    with pytest.raises(RuntimeError, match="not initialized"):
        await repository.count_memories("user-a")


async def test_round_trip_preserves_fields(repo):
    memory = _memory(
        "I love dragons",
        kind=MemoryKind.PREFERENCE,
        companion_id="luna",
        embedding=[0.5, -0.25, 1.0],
        importance=7,
        tags=["preference", "likes"],
        context=PreferenceSource(preference_type="likes"),
    )
    await repo.insert_memory(memory)

    [loaded] = await repo.query_memories("user-a")

    assert loaded.id == memory.id
    assert loaded.kind == MemoryKind.PREFERENCE
    assert loaded.companion_id == "luna"
    assert loaded.embedding == [0.5, -0.25, 1.0]
    assert loaded.importance == 7
    assert loaded.tags == ["preference", "likes"]
    assert loaded.context == PreferenceSource(preference_type="likes")
    assert loaded.created_at == BASE_TIME


async def test_story_context_and_empty_embedding(repo):
    memory = _memory(
        "Drake: a dragon",
        kind=MemoryKind.STORY_ELEMENT,
        document_id="novel-1",
        context=StorySource(element_type="character", name="Drake"),
    )
    await repo.insert_memory(memory)

    [loaded] = await repo.query_memories("user-a", document_id="novel-1")

    assert isinstance(loaded.context, StorySource)
    assert loaded.embedding == []


async def test_query_orders_newest_first_and_limits(repo):
    for i in range(5):
        await repo.insert_memory(_memory(f"m{i}", minutes=i))

    results = await repo.query_memories("user-a", limit=3)

    assert [m.content for m in results] == ["m4", "m3", "m2"]


async def test_query_filters(repo):
    await repo.insert_memory(_memory("mine", companion_id="luna"))
    await repo.insert_memory(_memory("other companion", companion_id="sol"))
    await repo.insert_memory(_memory("other owner", owner_user_id="user-b", companion_id="luna"))

    results = await repo.query_memories("user-a", companion_id="luna")

    assert [m.content for m in results] == ["mine"]
    assert len(await repo.query_memories("user-a")) == 2


async def test_touch_updates_access_time(repo):
    memory = _memory("touch me")
    await repo.insert_memory(memory)

    await repo.touch_memories([memory.id])
    await repo.touch_memories([])

    [loaded] = await repo.query_memories("user-a")
    assert loaded.last_accessed_at > BASE_TIME


async def test_delete_and_count(repo):
    memories = [_memory(f"m{i}", minutes=i) for i in range(3)]
    for memory in memories:
        await repo.insert_memory(memory)

    assert await repo.count_memories("user-a") == 3
    assert await repo.delete_memories([memories[0].id, "missing"]) == 1
    assert await repo.delete_memories([]) == 0
    assert await repo.count_memories("user-a") == 2
    assert await repo.count_memories("user-b") == 0
