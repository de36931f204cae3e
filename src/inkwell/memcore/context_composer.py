"""Context composer.

Builds a memory-augmented system prompt for the LLM call from stored
memories and the conversation window. Sections are appended in a fixed
order: relationship context, important moments, preferences, mood.
Missing data simply omits its section; composition never raises.
"""

from __future__ import annotations

from loguru import logger

from .conversation_window import ConversationWindowManager, extract_topics
from .memory_store import MemoryStore
from .models import (
    ChatMessage,
    ConversationContext,
    Memory,
    MemoryKind,
    MemoryScope,
    PreferenceSource,
    RelationshipDynamics,
)

NATURAL_USE_INSTRUCTION = (
    "Important: Use this context naturally in conversation. Don't explicitly "
    'reference "memories" or make it obvious you\'re using stored information. '
    "Respond as if you naturally remember these things about your relationship."
)

MOOD_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("positive", ("excited", "happy")),
    ("negative", ("sad", "frustrated")),
    ("inquisitive", ("curious", "wondering")),
)

_MOOD_WINDOW = 3
_MAX_PERSONAL_FACTS = 5
_MAX_IMPORTANT_MOMENTS = 3
_IMPORTANT_MOMENT_THRESHOLD = 8
_INTEREST_TAG = "interest:"


def detect_mood(messages: list[ChatMessage]) -> str | None:
    """Mood of the last few messages from a fixed keyword table.

    Returns None when there are no messages, "neutral" when nothing matches.
    """
    if not messages:
        return None
    recent = " ".join(m.content for m in messages[-_MOOD_WINDOW:]).lower()
    for mood, keywords in MOOD_KEYWORDS:
        if any(k in recent for k in keywords):
            return mood
    return "neutral"


def analyze_relationship(memories: list[Memory]) -> RelationshipDynamics:
    count = len(memories)
    if count > 20:
        closeness = "close"
    elif count > 5:
        closeness = "developing"
    else:
        closeness = "new"

    interests: dict[str, None] = {}
    for memory in memories:
        for tag in memory.tags:
            if tag.startswith(_INTEREST_TAG):
                interests.setdefault(tag[len(_INTEREST_TAG) :], None)

    return RelationshipDynamics(
        closeness=closeness,
        common_interests=list(interests),
        communication_style="established" if count > 10 else "developing",
    )


def consolidate_preferences(memories: list[Memory]) -> dict[str, str]:
    """Map preference type to content; the most important memory of a type wins."""
    preferences: dict[str, str] = {}
    for memory in memories:
        preference_type = _preference_type(memory)
        if preference_type:
            preferences.setdefault(preference_type, memory.content)
    return preferences


def _preference_type(memory: Memory) -> str | None:
    context = memory.context
    if isinstance(context, PreferenceSource):
        return context.preference_type
    for tag in ("likes", "dislikes"):
        if tag in memory.tags:
            return tag
    return None


class ContextComposer:
    """Composes memory context into the system prompt.

    Attributes:
        store: Memory store queried for personal, relationship and
            preference memories
        windows: Conversation windows used for recent turns
    """

    def __init__(self, store: MemoryStore, windows: ConversationWindowManager):
        self.store = store
        self.windows = windows

    async def build_context(
        self,
        scope: MemoryScope,
        recent_messages: list[ChatMessage] | None = None,
    ) -> ConversationContext:
        """Gather memory-derived context for one scope.

        Args:
            scope: Owner/companion scope
            recent_messages: Recent turns; defaults to the scope's
                conversation window

        Returns:
            Conversation context; empty fields when nothing is known
        """
        if recent_messages is None:
            recent_messages = self._recent_messages(scope)

        personal = await self._memories_by_type(scope, MemoryKind.PERSONAL, 5)
        relationship = await self._memories_by_type(scope, MemoryKind.RELATIONSHIP, 10)
        preferences = await self._memories_by_type(scope, MemoryKind.PREFERENCE, 5)

        return ConversationContext(
            mood=detect_mood(recent_messages),
            topics=extract_topics(recent_messages, max_topics=5),
            relationship=analyze_relationship(relationship) if relationship else None,
            personal_facts=[m.content for m in personal[:_MAX_PERSONAL_FACTS]],
            important_moments=[
                m.content
                for m in relationship
                if m.importance >= _IMPORTANT_MOMENT_THRESHOLD
            ][:_MAX_IMPORTANT_MOMENTS],
            preferences=consolidate_preferences(preferences),
        )

    async def build_prompt(
        self,
        base_prompt: str,
        scope: MemoryScope,
        recent_messages: list[ChatMessage] | None = None,
        context: ConversationContext | None = None,
    ) -> str:
        """Append memory context sections to ``base_prompt``.

        Never raises: a failure while gathering context leaves the prompt
        with only the sections that could be built.
        """
        if context is None:
            try:
                context = await self.build_context(scope, recent_messages)
            except Exception as e:
                logger.error(f"Failed to build memory context for {scope.key}: {e}")
                context = ConversationContext()

        sections = [base_prompt]

        relationship_lines = []
        if context.relationship:
            relationship_lines.append(context.relationship.format_for_context())
        if context.personal_facts:
            relationship_lines.append(
                f"Known about the user: {'; '.join(context.personal_facts)}"
            )
        if relationship_lines:
            sections.append(f"Relationship Context: {'. '.join(relationship_lines)}")

        if context.important_moments:
            sections.append(
                f"Important shared moments: {'; '.join(context.important_moments)}"
            )

        if context.preferences:
            formatted = "; ".join(f"{k}: {v}" for k, v in context.preferences.items())
            sections.append(f"User preferences: {formatted}")

        if context.mood:
            sections.append(f"Current mood/context: {context.mood}")

        sections.append(NATURAL_USE_INSTRUCTION)
        return "\n\n".join(sections)

    def _recent_messages(self, scope: MemoryScope) -> list[ChatMessage]:
        if not scope.conversation_id:
            return []
        try:
            return self.windows.recent_messages(scope.conversation_id)
        except Exception as e:
            logger.warning(f"Failed to read conversation window {scope.conversation_id}: {e}")
            return []

    async def _memories_by_type(
        self, scope: MemoryScope, kind: MemoryKind, limit: int
    ) -> list[Memory]:
        try:
            return await self.store.get_memories_by_type(scope, kind, limit)
        except Exception as e:
            logger.warning(f"Failed to load {kind.value} memories for {scope.key}: {e}")
            return []
