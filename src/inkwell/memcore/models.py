"""Memory core data models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class MemoryKind(str, Enum):
    PERSONAL = "personal"
    RELATIONSHIP = "relationship"
    CREATIVE = "creative"
    FACTUAL = "factual"
    PREFERENCE = "preference"
    STORY_ELEMENT = "story_element"


class MemoryScope(BaseModel):
    """Partition key for memories. ``owner_user_id`` is a hard tenant boundary."""

    owner_user_id: str
    companion_id: str | None = None
    document_id: str | None = None
    conversation_id: str | None = None

    @property
    def key(self) -> str:
        if self.companion_id:
            return f"{self.owner_user_id}:{self.companion_id}"
        return self.owner_user_id

    def is_valid(self) -> bool:
        return bool(self.owner_user_id and self.owner_user_id.strip())


class ConversationSource(BaseModel):
    """Memory extracted from a chat message."""

    kind: Literal["conversation"] = "conversation"
    source: str = "conversation"
    role: str = "user"
    emotions: list[str] = Field(default_factory=list)


class PreferenceSource(BaseModel):
    """Memory describing a user preference of a known type."""

    kind: Literal["preference"] = "preference"
    preference_type: str
    source: str = "conversation"


class StorySource(BaseModel):
    """Memory indexed from a story bible element."""

    kind: Literal["story"] = "story"
    element_type: str
    name: str


MemoryContext = Annotated[
    Union[ConversationSource, PreferenceSource, StorySource],
    Field(discriminator="kind"),
]


class Memory(BaseModel):
    """A stored semantic memory."""

    id: str = Field(default_factory=_uuid)
    owner_user_id: str
    companion_id: str | None = None
    document_id: str | None = None
    conversation_id: str | None = None
    kind: MemoryKind
    content: str
    embedding: list[float] = Field(default_factory=list)
    importance: int = 5
    tags: list[str] = Field(default_factory=list)
    context: MemoryContext | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_accessed_at: datetime = Field(default_factory=_utcnow)

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, value: Any) -> int:
        try:
            importance = int(round(float(value)))
        except (TypeError, ValueError):
            return 5
        return max(1, min(10, importance))

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        seen: dict[str, None] = {}
        for tag in value:
            seen.setdefault(str(tag), None)
        return list(seen)

    def in_scope(self, scope: MemoryScope) -> bool:
        """True when this memory belongs to ``scope``'s owner and narrowing filters."""
        if self.owner_user_id != scope.owner_user_id:
            return False
        if scope.companion_id and self.companion_id != scope.companion_id:
            return False
        if scope.document_id and self.document_id != scope.document_id:
            return False
        return True


class ScoredMemory(BaseModel):
    """A memory with its retrieval score."""

    memory: Memory
    score: float = 0.0
    source: str = "vector"  # "vector" or "fallback"


class ChatMessage(BaseModel):
    """A single conversation message."""

    role: str  # "user", "assistant", "system"
    content: str
    importance: int = 1
    emotion: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    def to_chat_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationWindow(BaseModel):
    """Bounded recent-message window for one conversation."""

    conversation_id: str
    recent_messages: list[ChatMessage] = Field(default_factory=list)
    overflow_messages: list[ChatMessage] = Field(default_factory=list)
    older_summary: str | None = None
    total_message_count: int = 0
    last_update_at: float = 0.0


class CacheStats(BaseModel):
    """Snapshot of bounded cache accounting."""

    total_size_bytes: int
    entry_count: int
    hit_rate: float
    memory_usage: str
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


class RelationshipDynamics(BaseModel):
    """Summary of the user/companion relationship derived from memories."""

    closeness: str = "new"  # "new", "developing", "close"
    common_interests: list[str] = Field(default_factory=list)
    communication_style: str = "developing"  # "developing", "established"

    def format_for_context(self) -> str:
        parts = [f"closeness: {self.closeness}"]
        if self.common_interests:
            parts.append(f"shared interests: {', '.join(self.common_interests)}")
        parts.append(f"communication: {self.communication_style}")
        return "; ".join(parts)


class ConversationContext(BaseModel):
    """Memory-derived context for prompt composition."""

    mood: str | None = None
    topics: list[str] = Field(default_factory=list)
    relationship: RelationshipDynamics | None = None
    personal_facts: list[str] = Field(default_factory=list)
    important_moments: list[str] = Field(default_factory=list)
    preferences: dict[str, str] = Field(default_factory=dict)


class StoryElementType(str, Enum):
    CHARACTER = "character"
    PLOT = "plot"
    WORLD = "world"
    THEME = "theme"
    SCENE = "scene"


class StoryElement(BaseModel):
    """A story bible element to be indexed for semantic lookup."""

    element_type: StoryElementType
    name: str
    description: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def slug(self) -> str:
        return "-".join(self.name.lower().split())


class ContinuityReport(BaseModel):
    """Result of checking new prose against indexed story elements."""

    consistency_score: float
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    related: list[ScoredMemory] = Field(default_factory=list)
