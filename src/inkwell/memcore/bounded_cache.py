"""TTL and size-bounded LRU cache.

Entries are charged an estimated in-memory footprint and evicted
least-recently-used first whenever the byte budget or the entry budget
would be exceeded. Expired entries are removed lazily when observed and
by a periodic background sweep; a second background pass evicts
proactively when the cache nears its byte budget.

All mutations are synchronous. The cache is meant to be shared by
coroutines on a single event loop, so no lock is taken.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from loguru import logger
from pydantic import BaseModel

from .config import CacheConfig
from .models import CacheStats

T = TypeVar("T")

Clock = Callable[[], float]
"""Returns a monotonic timestamp in milliseconds."""

_UNKNOWN_SIZE = 100


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def estimate_size(value: Any, _seen: set[int] | None = None) -> int:
    """Best-effort estimate of a value's in-memory footprint in bytes.

    Strings cost 2 bytes per character, numbers 8, booleans 4. Sequences
    and mappings are summed recursively; mapping keys are charged like
    strings. Pydantic models and dataclasses are measured as mappings of
    their fields.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return 4
    if isinstance(value, (int, float)):
        return 8
    if isinstance(value, str):
        return len(value) * 2
    if isinstance(value, (bytes, bytearray)):
        return len(value)

    seen = _seen if _seen is not None else set()
    if id(value) in seen:
        return 0
    seen.add(id(value))

    if isinstance(value, BaseModel):
        return estimate_size(dict(value), seen)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return estimate_size(fields, seen)
    if isinstance(value, dict):
        return sum(
            len(str(key)) * 2 + estimate_size(item, seen)
            for key, item in value.items()
        )
    if isinstance(value, (list, tuple, set, frozenset)):
        return sum(estimate_size(item, seen) for item in value)
    return _UNKNOWN_SIZE


def format_bytes(size: int) -> str:
    """Format a byte count as a short human-readable string."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    k = 1024
    i = min(int(math.floor(math.log(size) / math.log(k))), len(units) - 1)
    return f"{round(size / k**i, 2):g} {units[i]}"


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its accounting metadata."""

    data: T
    created_at: float
    size_bytes: int
    ttl_ms: float
    access_count: int = 0
    last_access_at: float = 0.0
    seq: int = 0  # bumped on every touch; breaks last_access_at ties


class BoundedCache:
    """TTL-based key/value cache with byte and entry budgets.

    Features:
    - Per-entry TTL, checked when an entry is observed
    - True LRU eviction by last access time, down to a low-water mark
    - Hit/miss accounting and human-readable size stats
    - Background cleanup and memory-pressure passes (``start``/``stop``)
    """

    def __init__(
        self,
        max_size_bytes: int = 50 * 1024 * 1024,
        max_entries: int = 1000,
        default_ttl_ms: float = 10 * 60 * 1000,
        low_water_ratio: float = 0.8,
        pressure_ratio: float = 0.9,
        clock: Clock | None = None,
        name: str = "cache",
    ):
        """
        Args:
            max_size_bytes: Byte budget for all live entries
            max_entries: Entry-count budget
            default_ttl_ms: TTL applied when ``set`` is called without one
            low_water_ratio: Eviction stops once both budgets are under this ratio
            pressure_ratio: Background pass evicts once size exceeds this ratio
            clock: Millisecond clock (monotonic by default)
            name: Label used in log lines
        """
        self.max_size_bytes = max_size_bytes
        self.max_entries = max_entries
        self.default_ttl_ms = default_ttl_ms
        self.low_water_ratio = low_water_ratio
        self.pressure_ratio = pressure_ratio
        self.name = name
        self._clock = clock or monotonic_ms
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._seq = itertools.count()
        self._current_size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_config(
        cls, config: CacheConfig, clock: Clock | None = None, name: str = "cache"
    ) -> "BoundedCache":
        return cls(
            max_size_bytes=config.max_size_bytes,
            max_entries=config.max_entries,
            default_ttl_ms=config.default_ttl_ms,
            low_water_ratio=config.low_water_ratio,
            pressure_ratio=config.pressure_ratio,
            clock=clock,
            name=name,
        )

    @property
    def current_size_bytes(self) -> int:
        return self._current_size

    def now(self) -> float:
        return self._clock()

    def set(self, key: str, value: Any, ttl_ms: float | None = None) -> None:
        """Store ``value`` under ``key``, evicting LRU entries if budgets require it."""
        size = estimate_size(value)
        ttl = ttl_ms if ttl_ms and ttl_ms > 0 else self.default_ttl_ms

        existing = self._entries.pop(key, None)
        if existing is not None:
            self._current_size -= existing.size_bytes

        if (
            self._current_size + size > self.max_size_bytes
            or len(self._entries) >= self.max_entries
        ):
            self._evict_lru(incoming_bytes=size)

        now = self._clock()
        self._entries[key] = CacheEntry(
            data=value,
            created_at=now,
            size_bytes=size,
            ttl_ms=ttl,
            last_access_at=now,
            seq=next(self._seq),
        )
        self._current_size += size

        if size > self.max_size_bytes:
            logger.warning(
                f"[{self.name}] entry '{key}' ({format_bytes(size)}) exceeds "
                f"the whole cache budget ({format_bytes(self.max_size_bytes)})"
            )

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if self._is_expired(entry, now):
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            return None

        entry.access_count += 1
        entry.last_access_at = max(now, entry.created_at)
        entry.seq = next(self._seq)
        self._hits += 1
        return entry.data

    def has(self, key: str) -> bool:
        """Freshness check without touching hit/miss counters."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._is_expired(entry, self._clock()):
            self._remove(key)
            self._expirations += 1
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._remove(key)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._current_size = 0
        self._hits = 0
        self._misses = 0
        logger.debug(f"[{self.name}] cleared {count} entries")

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            total_size_bytes=self._current_size,
            entry_count=len(self._entries),
            hit_rate=self._hits / total if total > 0 else 0.0,
            memory_usage=format_bytes(self._current_size),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
        )

    def entry(self, key: str) -> CacheEntry[Any] | None:
        """Raw entry metadata, without freshness checks or accounting."""
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # ------------------------------------------------------------------
    # Eviction and sweeps
    # ------------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry[Any], now: float) -> bool:
        return now - entry.created_at > entry.ttl_ms

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._current_size -= entry.size_bytes
        return True

    def _recount(self) -> None:
        actual = sum(e.size_bytes for e in self._entries.values())
        if actual != self._current_size:
            logger.warning(
                f"[{self.name}] size accounting drift: tracked={self._current_size}, "
                f"actual={actual}; correcting"
            )
            self._current_size = actual

    def _evict_lru(self, incoming_bytes: int = 0) -> int:
        """Evict least-recently-used entries down to the low-water mark.

        Returns:
            Number of evicted entries
        """
        if not self._entries:
            return 0

        self._recount()
        size_target = self.max_size_bytes * self.low_water_ratio
        count_target = self.max_entries * self.low_water_ratio

        ordered = sorted(
            self._entries.items(),
            key=lambda item: (item[1].last_access_at, item[1].seq),
        )
        removed = 0
        for key, _ in ordered:
            if (
                self._current_size + incoming_bytes <= size_target
                and len(self._entries) <= count_target
            ):
                break
            self._remove(key)
            removed += 1

        self._evictions += removed
        logger.debug(f"[{self.name}] evicted {removed} LRU entries")
        return removed

    def cleanup_expired(self) -> int:
        """Remove every expired entry. A pass that finds nothing is a no-op."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items() if self._is_expired(entry, now)
        ]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)

        if expired:
            logger.info(f"[{self.name}] cleaned up {len(expired)} expired entries")
        return len(expired)

    def check_pressure(self) -> bool:
        """Evict proactively when live size exceeds the pressure ratio.

        Returns:
            True if an eviction pass ran
        """
        if self._current_size <= self.max_size_bytes * self.pressure_ratio:
            return False
        logger.warning(
            f"[{self.name}] approaching memory limit "
            f"({format_bytes(self._current_size)} / "
            f"{format_bytes(self.max_size_bytes)}), evicting"
        )
        self._evict_lru()
        return True

    def _monitor_pass(self) -> None:
        self.check_pressure()
        stats = self.stats()
        if stats.entry_count > 0:
            logger.debug(
                f"[{self.name}] stats: {stats.entry_count} entries, "
                f"{stats.memory_usage}, {stats.hit_rate:.1%} hit rate"
            )

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def start(
        self, cleanup_interval_s: float = 300.0, monitor_interval_s: float = 60.0
    ) -> None:
        """Start the cleanup and memory-pressure passes on the running loop."""
        if self._tasks:
            logger.warning(f"[{self.name}] background tasks already running")
            return

        self._tasks = [
            asyncio.create_task(
                self._run_periodic(self.cleanup_expired, cleanup_interval_s),
                name=f"{self.name}_cleanup",
            ),
            asyncio.create_task(
                self._run_periodic(self._monitor_pass, monitor_interval_s),
                name=f"{self.name}_monitor",
            ),
        ]
        logger.info(
            f"[{self.name}] background passes started "
            f"(cleanup={cleanup_interval_s}s, monitor={monitor_interval_s}s)"
        )

    async def stop(self) -> None:
        """Cancel background passes."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._tasks:
            logger.info(f"[{self.name}] background passes stopped")
        self._tasks = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def _run_periodic(self, pass_fn: Callable[[], Any], interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                pass_fn()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.name}] background pass failed: {e}")
