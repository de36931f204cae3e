"""
Inkwell memory core

In-process memory and caching for companion chat and story writing:
a TTL and size-bounded LRU cache, per-conversation message windows, and
a semantic memory store with vector retrieval and keyword fallback that
feeds memory-augmented system prompts.
"""

from .bounded_cache import BoundedCache, estimate_size
from .config import MemoryCoreConfig
from .context_composer import ContextComposer
from .conversation_window import ConversationWindowManager
from .embedding import EmbeddingGateway, EmbeddingProvider, OpenAIEmbeddingProvider
from .extraction import MessageExtractor
from .memory_store import MemoryStore
from .models import (
    ChatMessage,
    ConversationContext,
    ConversationWindow,
    Memory,
    MemoryKind,
    MemoryScope,
    ScoredMemory,
    StoryElement,
    StoryElementType,
)
from .resource_monitor import ResourceMonitor
from .retention import KeepForever, MaxAgeRetention, MaxCountRetention
from .service import MemoryCore
from .similarity import cosine_similarity, rank
from .story_bible import StoryBibleIndex

__all__ = [
    "BoundedCache",
    "estimate_size",
    "MemoryCoreConfig",
    "ContextComposer",
    "ConversationWindowManager",
    "EmbeddingGateway",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "MessageExtractor",
    "MemoryStore",
    "ChatMessage",
    "ConversationContext",
    "ConversationWindow",
    "Memory",
    "MemoryKind",
    "MemoryScope",
    "ScoredMemory",
    "StoryElement",
    "StoryElementType",
    "ResourceMonitor",
    "KeepForever",
    "MaxAgeRetention",
    "MaxCountRetention",
    "MemoryCore",
    "cosine_similarity",
    "rank",
    "StoryBibleIndex",
]
