"""Rolling operation-timing and memory metrics with a stress signal."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

import psutil
from loguru import logger

from .bounded_cache import Clock, monotonic_ms
from .config import MonitorConfig


@dataclass
class MetricEntry:
    """A single recorded metric."""

    name: str
    value: float
    metric_type: str = "duration"  # "duration", "memory", "count"
    recorded_at: float = field(default_factory=monotonic_ms)


@dataclass
class PerformanceSummary:
    average_response_ms: float
    memory_usage_mb: float
    slow_operations: list[str]


class ResourceMonitor:
    """Keeps the most recent metrics and derives a stress signal from them.

    Duration metrics whose name contains ``response`` feed the average
    response time. Memory usage is the latest sampled process RSS.
    """

    def __init__(self, config: MonitorConfig | None = None, clock: Clock | None = None):
        self.config = config or MonitorConfig()
        self._clock = clock or monotonic_ms
        self._entries: deque[MetricEntry] = deque(maxlen=self.config.max_entries)
        self._task: asyncio.Task | None = None

    def record_metric(
        self, name: str, value: float, metric_type: str = "duration"
    ) -> None:
        self._entries.append(
            MetricEntry(
                name=name,
                value=float(value),
                metric_type=metric_type,
                recorded_at=self._clock(),
            )
        )

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block as a duration metric."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_metric(name, (time.perf_counter() - start) * 1000.0)

    def sample_process_memory(self) -> float:
        """Record current process RSS in bytes and return it in megabytes."""
        rss = psutil.Process().memory_info().rss
        self.record_metric("memory-used", rss, "memory")
        return rss / 1024 / 1024

    @property
    def entries(self) -> list[MetricEntry]:
        return list(self._entries)

    def get_performance_summary(self) -> PerformanceSummary:
        responses = [
            e.value
            for e in self._entries
            if e.metric_type == "duration" and "response" in e.name
        ]
        average = sum(responses) / len(responses) if responses else 0.0

        memory_samples = [
            e.value for e in self._entries if e.name == "memory-used"
        ]
        memory_mb = memory_samples[-1] / 1024 / 1024 if memory_samples else 0.0

        slow = [
            f"{e.name}: {round(e.value)}ms"
            for e in self._entries
            if e.metric_type == "duration" and e.value > self.config.slow_operation_ms
        ][-5:]

        return PerformanceSummary(
            average_response_ms=round(average),
            memory_usage_mb=round(memory_mb),
            slow_operations=slow,
        )

    def is_system_stressed(self) -> bool:
        summary = self.get_performance_summary()
        return (
            summary.average_response_ms > self.config.stressed_response_ms
            or summary.memory_usage_mb > self.config.stressed_memory_mb
            or len(summary.slow_operations) > self.config.stressed_slow_operations
        )

    def start(self) -> None:
        """Start periodic process-memory sampling on the running loop."""
        if self._task and not self._task.done():
            logger.warning("ResourceMonitor sampling already running")
            return
        self._task = asyncio.create_task(
            self._sample_loop(self.config.sample_interval_s),
            name="resource_monitor_sampler",
        )
        logger.info(
            f"ResourceMonitor sampling started (interval: {self.config.sample_interval_s}s)"
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("ResourceMonitor sampling stopped")

    async def _sample_loop(self, interval: float) -> None:
        while True:
            try:
                self.sample_process_memory()
                if self.is_system_stressed():
                    summary = self.get_performance_summary()
                    logger.warning(
                        f"System under stress: avg_response={summary.average_response_ms}ms, "
                        f"memory={summary.memory_usage_mb}MB, "
                        f"slow_ops={len(summary.slow_operations)}"
                    )
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Resource sampling failed: {e}")
                await asyncio.sleep(interval)
