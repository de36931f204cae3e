"""Conversation window manager.

Keeps a bounded window of recent messages per conversation in the
bounded cache, plus a lazily rebuilt synopsis of the messages that fell
out of the window. The cache is an accelerator: a miss means the caller
rehydrates from durable storage via ``store_conversation``.
"""

from __future__ import annotations

import string
from collections import Counter

from loguru import logger

from .bounded_cache import BoundedCache
from .config import ConversationConfig
from .models import ChatMessage, ConversationWindow

_KEY_PREFIX = "conversation:"
_EXCERPT_CHARS = 100


def extract_topics(messages: list[ChatMessage], max_topics: int = 10) -> list[str]:
    """Frequency-ranked content words longer than 5 characters from user messages.

    Ties keep first-appearance order.
    """
    word_counts: Counter[str] = Counter()
    for msg in messages:
        if msg.role != "user":
            continue
        for raw in msg.content.lower().split():
            word = raw.strip(string.punctuation)
            if len(word) > 5:
                word_counts[word] += 1
    return [word for word, _ in word_counts.most_common(max_topics)]


def summarize_messages(
    messages: list[ChatMessage],
    max_topics: int = 10,
    max_moments: int = 3,
) -> str:
    """Build a one-paragraph synopsis of older messages.

    Topics are content words longer than 5 characters from user messages,
    ranked by frequency (first appearance breaks ties). Key moments are
    short excerpts of high-importance or emotional messages.
    """
    moments: list[str] = []
    for msg in messages:
        if msg.importance > 7 or (msg.emotion and msg.emotion != "neutral"):
            moments.append(msg.content[:_EXCERPT_CHARS])

    topics = extract_topics(messages, max_topics)
    moments = moments[:max_moments]

    parts = []
    if topics:
        parts.append(f"Previous conversation covered: {', '.join(topics)}.")
    if moments:
        parts.append(f"Key moments: {'; '.join(moments)}")
    if not parts:
        parts.append(f"Previous conversation spanned {len(messages)} earlier messages.")
    return " ".join(parts)


class ConversationWindowManager:
    """Bounded per-conversation message windows backed by the bounded cache.

    Attributes:
        window_size: Number of recent messages retained (W)
        summary_threshold: Total message count above which the synopsis
            of older messages is maintained (S, greater than W)
    """

    def __init__(self, cache: BoundedCache, config: ConversationConfig | None = None):
        self._cache = cache
        self.config = config or ConversationConfig()
        self.window_size = self.config.window_size
        self.summary_threshold = self.config.summary_threshold

        logger.debug(
            f"ConversationWindowManager initialized with window_size={self.window_size}, "
            f"summary_threshold={self.summary_threshold}"
        )

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"{_KEY_PREFIX}{conversation_id}"

    def get(self, conversation_id: str) -> ConversationWindow | None:
        return self._cache.get(self._key(conversation_id))

    def append(self, conversation_id: str, message: ChatMessage) -> ConversationWindow:
        """Append a message, truncating the window to the last ``window_size`` entries.

        Args:
            conversation_id: Conversation identifier
            message: Message to append (order of calls is preserved)

        Returns:
            The updated window
        """
        window = self.get(conversation_id) or ConversationWindow(
            conversation_id=conversation_id
        )

        window.recent_messages.append(message)
        window.total_message_count += 1

        if len(window.recent_messages) > self.window_size:
            dropped = window.recent_messages[: -self.window_size]
            window.recent_messages = window.recent_messages[-self.window_size :]
            self._push_overflow(window, dropped)

        if window.total_message_count > self.summary_threshold and window.overflow_messages:
            window.older_summary = summarize_messages(
                window.overflow_messages,
                max_topics=self.config.max_topics,
                max_moments=self.config.max_key_moments,
            )

        self._save(window)
        return window

    def store_conversation(
        self, conversation_id: str, messages: list[ChatMessage]
    ) -> ConversationWindow:
        """Rebuild a window from a full message history (e.g. after a cache miss)."""
        window = ConversationWindow(
            conversation_id=conversation_id,
            recent_messages=list(messages[-self.window_size :]),
            total_message_count=len(messages),
        )
        self._push_overflow(window, list(messages[: -self.window_size]))

        if len(messages) > self.summary_threshold and window.overflow_messages:
            window.older_summary = summarize_messages(
                window.overflow_messages,
                max_topics=self.config.max_topics,
                max_moments=self.config.max_key_moments,
            )

        self._save(window)
        logger.debug(
            f"Conversation {conversation_id} rehydrated: "
            f"{len(window.recent_messages)} recent of {len(messages)} total"
        )
        return window

    def recent_messages(
        self, conversation_id: str, count: int | None = None
    ) -> list[ChatMessage]:
        window = self.get(conversation_id)
        if window is None:
            return []
        messages = list(window.recent_messages)
        return messages[-count:] if count else messages

    def forget(self, conversation_id: str) -> bool:
        return self._cache.delete(self._key(conversation_id))

    def _push_overflow(self, window: ConversationWindow, dropped: list[ChatMessage]) -> None:
        if not dropped:
            return
        window.overflow_messages.extend(dropped)
        limit = self.config.max_overflow_messages
        if len(window.overflow_messages) > limit:
            window.overflow_messages = window.overflow_messages[-limit:]

    def _save(self, window: ConversationWindow) -> None:
        window.last_update_at = self._cache.now()
        self._cache.set(self._key(window.conversation_id), window, self.config.ttl_ms)
