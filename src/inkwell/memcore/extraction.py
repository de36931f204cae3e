"""Regex-based memory extraction for the chat hot path.

Runs synchronously with no LLM dependency. Pulls personal facts (age,
occupation), likes and dislikes, and emotion words out of a single chat
message. ``MessageExtractor.ingest`` turns the matches into stored
memories; relationship memories are only written for companion chats.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from loguru import logger

from .memory_store import MemoryStore
from .models import (
    ConversationSource,
    Memory,
    MemoryKind,
    MemoryScope,
    PreferenceSource,
)


@dataclass(frozen=True, slots=True)
class _PatternEntry:
    """A single compiled extraction pattern with metadata."""

    pattern: re.Pattern[str]
    kind: MemoryKind
    importance: int
    tags: tuple[str, ...]
    preference_type: str | None = None


@dataclass
class ExtractedMemory:
    kind: MemoryKind
    content: str
    importance: int
    tags: list[str] = field(default_factory=list)
    preference_type: str | None = None


_AGE_PATTERN = re.compile(r"i am (\d+)|i'm (\d+)|age (\d+)", re.IGNORECASE)

_OCCUPATION = _PatternEntry(
    pattern=re.compile(r"\b(?:i work as|i'm a|i am a|my job)\b", re.IGNORECASE),
    kind=MemoryKind.PERSONAL,
    importance=6,
    tags=("personal", "career"),
)

_PREFERENCES = (
    _PatternEntry(
        pattern=re.compile(r"i like|i love|i enjoy|i prefer", re.IGNORECASE),
        kind=MemoryKind.PREFERENCE,
        importance=5,
        tags=("preference", "likes"),
        preference_type="likes",
    ),
    _PatternEntry(
        pattern=re.compile(r"i hate|i dislike|i don't like", re.IGNORECASE),
        kind=MemoryKind.PREFERENCE,
        importance=6,
        tags=("preference", "dislikes"),
        preference_type="dislikes",
    ),
)

EMOTION_WORDS: dict[str, tuple[str, ...]] = {
    "happy": ("happy", "joy", "excited", "thrilled", "delighted"),
    "sad": ("sad", "depressed", "down", "melancholy"),
    "angry": ("angry", "furious", "mad", "irritated"),
    "anxious": ("anxious", "worried", "nervous", "stressed"),
    "curious": ("curious", "interested", "wondering"),
}

_EMOTION_PATTERNS = {
    emotion: re.compile(r"\b(?:" + "|".join(words) + r")\b", re.IGNORECASE)
    for emotion, words in EMOTION_WORDS.items()
}

_RELATIONSHIP_IMPORTANCE = 3
_RELATIONSHIP_EXCERPT = 200


def extract_personal_info(message: str) -> list[ExtractedMemory]:
    found: list[ExtractedMemory] = []

    age_match = _AGE_PATTERN.search(message)
    if age_match:
        age = next(g for g in age_match.groups() if g)
        found.append(
            ExtractedMemory(
                kind=MemoryKind.PERSONAL,
                content=f"User is {age} years old",
                importance=7,
                tags=["personal", "age"],
            )
        )

    if _OCCUPATION.pattern.search(message):
        found.append(
            ExtractedMemory(
                kind=_OCCUPATION.kind,
                content=f"Career information: {message}",
                importance=_OCCUPATION.importance,
                tags=list(_OCCUPATION.tags),
            )
        )
    return found


def extract_preferences(message: str) -> list[ExtractedMemory]:
    return [
        ExtractedMemory(
            kind=entry.kind,
            content=message,
            importance=entry.importance,
            tags=list(entry.tags),
            preference_type=entry.preference_type,
        )
        for entry in _PREFERENCES
        if entry.pattern.search(message)
    ]


def detect_emotions(message: str) -> list[str]:
    """Emotion categories whose words appear in the message, in table order."""
    return [
        emotion for emotion, pattern in _EMOTION_PATTERNS.items() if pattern.search(message)
    ]


class MessageExtractor:
    """Extracts and stores memories from individual chat messages."""

    def __init__(self, store: MemoryStore):
        self._store = store

    def extract(self, message: str) -> list[ExtractedMemory]:
        """Personal facts followed by preferences found in ``message``."""
        return extract_personal_info(message) + extract_preferences(message)

    async def ingest(self, scope: MemoryScope, message: str, role: str) -> list[Memory]:
        """Store every memory extracted from one message.

        Args:
            scope: Owner (and optional companion/document) of the message
            message: Message text
            role: "user" or "assistant"

        Returns:
            Memories that were stored
        """
        stored: list[Memory] = []

        for item in self.extract(message):
            if item.preference_type:
                context = PreferenceSource(preference_type=item.preference_type)
            else:
                context = ConversationSource(role=role)
            memory = await self._store.store(
                item.content,
                item.kind,
                scope,
                importance=item.importance,
                tags=item.tags,
                context=context,
            )
            if memory is not None:
                stored.append(memory)

        emotions = detect_emotions(message)
        if scope.companion_id and (emotions or role == "assistant"):
            excerpt = message[:_RELATIONSHIP_EXCERPT]
            if len(message) > _RELATIONSHIP_EXCERPT:
                excerpt += "..."
            memory = await self._store.store(
                f"Conversation interaction: {excerpt}",
                MemoryKind.RELATIONSHIP,
                scope,
                importance=_RELATIONSHIP_IMPORTANCE,
                tags=["interaction", *emotions],
                context=ConversationSource(role=role, emotions=emotions),
            )
            if memory is not None:
                stored.append(memory)

        if stored:
            logger.debug(f"Extracted {len(stored)} memories from {role} message for {scope.key}")
        return stored
