"""Memory core facade.

Constructs and wires every memory component once at process start and
hands the resulting ``MemoryCore`` to request-handling code. Owns the
background cache and monitor tasks.
"""

from __future__ import annotations

from loguru import logger

from .bounded_cache import BoundedCache, Clock
from .config import MemoryCoreConfig
from .context_composer import ContextComposer
from .conversation_window import ConversationWindowManager
from .embedding import EmbeddingGateway
from .extraction import MessageExtractor
from .memory_store import MemoryStore
from .models import ChatMessage, Memory, MemoryScope, ScoredMemory
from .resource_monitor import ResourceMonitor
from .retention import create_retention_policy
from .storage import InMemoryRepository, MemoryRepository, SQLiteMemoryRepository
from .story_bible import StoryBibleIndex


def create_repository(config: MemoryCoreConfig) -> MemoryRepository:
    backend = config.storage.backend
    if backend == "sqlite":
        return SQLiteMemoryRepository(db_path=config.storage.sqlite_db_path)
    if backend == "memory":
        return InMemoryRepository()
    raise ValueError(f"Unknown memory storage backend: {backend!r}")


class MemoryCore:
    """Main memory core facade.

    Provides:
    - Per-conversation message windows in the bounded cache
    - Memory extraction from chat messages
    - Vector retrieval with keyword fallback
    - Memory-augmented system prompts
    - Story bible indexing

    Components can be injected for tests; anything not given is built
    from ``config``.
    """

    def __init__(
        self,
        config: MemoryCoreConfig | None = None,
        *,
        repository: MemoryRepository | None = None,
        gateway: EmbeddingGateway | None = None,
        clock: Clock | None = None,
    ):
        """Initialize memory core.

        Args:
            config: Memory core configuration (uses defaults if not provided)
            repository: Durable memory repository (built from config if omitted)
            gateway: Embedding gateway (built from config if omitted)
            clock: Millisecond clock for cache and monitor bookkeeping
        """
        self.config = config or MemoryCoreConfig()

        self.cache = BoundedCache.from_config(self.config.cache, clock=clock, name="memcore")
        self.windows = ConversationWindowManager(self.cache, self.config.conversation)
        self.monitor = ResourceMonitor(self.config.monitor, clock=clock)
        self.gateway = gateway or EmbeddingGateway.from_config(self.config.embedding)
        self.repository = repository or create_repository(self.config)
        self.store = MemoryStore(
            self.gateway,
            self.repository,
            config=self.config.retrieval,
            retention=create_retention_policy(self.config.retention),
            read_timeout_s=self.config.storage.read_timeout_s,
        )
        self.extractor = MessageExtractor(self.store)
        self.composer = ContextComposer(self.store, self.windows)
        self.story_bible = StoryBibleIndex(
            self.store, min_similarity=self.config.retrieval.story_min_similarity
        )
        self._started = False

        logger.debug(
            f"MemoryCore full config: "
            f"{self.config.model_dump(exclude={'embedding': {'api_key'}})}"
        )
        logger.info(
            f"MemoryCore initialized: enabled={self.config.enabled}, "
            f"backend={self.config.storage.backend!r}, "
            f"embeddings={'on' if self.gateway.available else 'off'}"
        )

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Open durable storage and start background passes on the running loop."""
        if self._started:
            return

        initialize = getattr(self.repository, "initialize", None)
        if initialize is not None:
            try:
                await initialize()
            except Exception as e:
                logger.error(f"Memory repository failed to initialize: {e}")

        self.cache.start(
            cleanup_interval_s=self.config.cache.cleanup_interval_s,
            monitor_interval_s=self.config.cache.monitor_interval_s,
        )
        self.monitor.start()
        self._started = True
        logger.info("MemoryCore started")

    async def stop(self) -> None:
        """Stop background passes and close durable storage."""
        await self.cache.stop()
        await self.monitor.stop()

        close = getattr(self.repository, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing memory repository: {e}")

        self._started = False
        logger.info("MemoryCore stopped")

    async def ingest_message(self, scope: MemoryScope, message: ChatMessage) -> list[Memory]:
        """Record a chat message in its window and extract memories from it.

        Never raises; a failure only costs the memories of this message.
        """
        if not self.config.enabled:
            return []

        if scope.conversation_id:
            self.windows.append(scope.conversation_id, message)

        try:
            with self.monitor.measure("memory-ingest"):
                return await self.extractor.ingest(scope, message.content, message.role)
        except Exception as e:
            logger.error(f"Memory extraction failed for {scope.key}: {e}")
            return []

    async def build_prompt(
        self,
        base_prompt: str,
        scope: MemoryScope,
        recent_messages: list[ChatMessage] | None = None,
    ) -> str:
        if not self.config.enabled:
            return base_prompt
        with self.monitor.measure("prompt-response"):
            return await self.composer.build_prompt(base_prompt, scope, recent_messages)

    async def retrieve(
        self,
        query: str,
        scope: MemoryScope,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> list[ScoredMemory]:
        if not self.config.enabled:
            return []
        with self.monitor.measure("retrieval-response"):
            return await self.store.retrieve(query, scope, limit, min_similarity)

    async def warm(self, scope: MemoryScope) -> int:
        return await self.store.warm(scope)

    async def apply_retention(self, scope: MemoryScope) -> int:
        return await self.store.apply_retention(scope)

    def stats(self) -> dict:
        summary = self.monitor.get_performance_summary()
        return {
            "enabled": self.config.enabled,
            "embeddings_available": self.gateway.available,
            "cache": self.cache.stats().model_dump(),
            "monitor": {
                "average_response_ms": summary.average_response_ms,
                "memory_usage_mb": summary.memory_usage_mb,
                "slow_operations": summary.slow_operations,
                "stressed": self.monitor.is_system_stressed(),
            },
        }
