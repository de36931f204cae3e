"""Memory retention policies.

A policy looks at an owner's memories (newest first) and names the ones
to prune. ``KeepForever`` is the default, so nothing is deleted unless a
deployment opts in.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from .config import RetentionConfig
from .models import Memory, MemoryKind


@runtime_checkable
class RetentionPolicy(Protocol):
    name: str

    def select_expired(self, memories: list[Memory], now: datetime) -> list[str]:
        """Return ids of memories to delete."""
        ...


class KeepForever:
    """Never prune (the "unlimited" retention setting)."""

    name = "unlimited"

    def select_expired(self, memories: list[Memory], now: datetime) -> list[str]:
        return []


class MaxAgeRetention:
    """Prune memories older than ``max_age_days``.

    Story elements are exempt: a story bible outlives any chat history.
    """

    name = "max_age"

    def __init__(self, max_age_days: float):
        if max_age_days <= 0:
            raise ValueError(f"max_age_days must be positive, got {max_age_days}")
        self.max_age = timedelta(days=max_age_days)

    def select_expired(self, memories: list[Memory], now: datetime) -> list[str]:
        cutoff = now - self.max_age
        return [
            m.id
            for m in memories
            if m.created_at < cutoff and m.kind != MemoryKind.STORY_ELEMENT
        ]


class MaxCountRetention:
    """Keep at most ``max_count`` memories per owner, pruning the oldest."""

    name = "max_count"

    def __init__(self, max_count: int):
        if max_count < 0:
            raise ValueError(f"max_count must be non-negative, got {max_count}")
        self.max_count = max_count

    def select_expired(self, memories: list[Memory], now: datetime) -> list[str]:
        ordered = sorted(memories, key=lambda m: m.created_at, reverse=True)
        return [m.id for m in ordered[self.max_count :]]


def create_retention_policy(config: RetentionConfig | None = None) -> RetentionPolicy:
    """Build the policy named by ``config.policy``."""
    config = config or RetentionConfig()
    if config.policy == "unlimited":
        return KeepForever()
    if config.policy == "max_age":
        return MaxAgeRetention(config.max_age_days)
    if config.policy == "max_count":
        return MaxCountRetention(config.max_count)
    raise ValueError(f"Unknown retention policy: {config.policy!r}")
