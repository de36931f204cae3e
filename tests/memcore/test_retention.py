"""Tests for retention policies."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from inkwell.memcore.config import RetentionConfig
from inkwell.memcore.models import Memory, MemoryKind
from inkwell.memcore.retention import (
    KeepForever,
    MaxAgeRetention,
    MaxCountRetention,
    RetentionPolicy,
    create_retention_policy,
)

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _memory(memory_id: str, age_days: float, kind=MemoryKind.FACTUAL) -> Memory:
    return Memory(
        id=memory_id,
        owner_user_id="u",
        kind=kind,
        content=memory_id,
        created_at=NOW - timedelta(days=age_days),
    )


def test_keep_forever_selects_nothing():
    memories = [_memory("old", 10_000)]
    assert KeepForever().select_expired(memories, NOW) == []


def test_max_age_spares_story_elements():
    memories = [
        _memory("fresh", 1),
        _memory("stale", 40),
        _memory("stale-story", 40, kind=MemoryKind.STORY_ELEMENT),
    ]
    assert MaxAgeRetention(30).select_expired(memories, NOW) == ["stale"]


def test_max_count_prunes_oldest():
    memories = [_memory("mid", 5), _memory("newest", 1), _memory("oldest", 9)]
    assert MaxCountRetention(2).select_expired(memories, NOW) == ["oldest"]
    assert MaxCountRetention(5).select_expired(memories, NOW) == []


@pytest.mark.parametrize(
    "policy, expected",
    [("unlimited", KeepForever), ("max_age", MaxAgeRetention), ("max_count", MaxCountRetention)],
)
def test_factory(policy, expected):
    built = create_retention_policy(RetentionConfig(policy=policy))
    assert isinstance(built, expected)
    assert isinstance(built, RetentionPolicy)
    assert built.name == policy


def test_factory_defaults_to_keep_forever():
    assert isinstance(create_retention_policy(), KeepForever)


def test_factory_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown retention policy"):
        create_retention_policy(RetentionConfig(policy="sometimes"))


def test_invalid_bounds():
    with pytest.raises(ValueError):
        MaxAgeRetention(0)
    with pytest.raises(ValueError):
        MaxCountRetention(-1)
