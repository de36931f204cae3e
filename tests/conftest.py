"""
Inkwell test fixtures
Shared fixtures and fakes for the memory core tests.
"""
from unittest.mock import AsyncMock

import pytest

from inkwell.memcore.bounded_cache import BoundedCache
from inkwell.memcore.embedding import EmbeddingGateway
from inkwell.memcore.memory_store import MemoryStore
from inkwell.memcore.models import MemoryScope
from inkwell.memcore.storage import InMemoryRepository

DIMENSION = 4


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def keyword_vector(text: str) -> list[float]:
    """Deterministic 4-d embedding: one axis per topic keyword."""
    lowered = text.lower()
    return [
        1.0 if "dragon" in lowered else 0.0,
        1.0 if "coffee" in lowered else 0.0,
        1.0 if "castle" in lowered else 0.0,
        0.1,
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return BoundedCache(max_size_bytes=10_000, max_entries=10, default_ttl_ms=1_000, clock=clock)


@pytest.fixture
def keyword_provider():
    """Embedding provider mock whose vectors follow ``keyword_vector``."""
    provider = AsyncMock()
    provider.embed.side_effect = lambda text, max_chars: keyword_vector(text)
    return provider


@pytest.fixture
def failing_provider():
    """Embedding provider mock that fails on every call."""
    provider = AsyncMock()
    provider.embed.side_effect = ConnectionError("provider unreachable")
    return provider


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def vector_store(keyword_provider, repository):
    gateway = EmbeddingGateway(keyword_provider, dimension=DIMENSION)
    return MemoryStore(gateway, repository)


@pytest.fixture
def degraded_store(failing_provider, repository):
    gateway = EmbeddingGateway(failing_provider, dimension=DIMENSION)
    return MemoryStore(gateway, repository)


@pytest.fixture
def scope():
    return MemoryScope(owner_user_id="user-a", companion_id="luna")
