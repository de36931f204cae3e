"""Story bible index.

Story bible elements (characters, plot points, world building, themes,
scenes) are indexed as high-importance ``story_element`` memories scoped
to a document, so related elements can be found by semantic similarity
while writing and new prose can be checked against them.
"""

from __future__ import annotations

import json

from loguru import logger

from .memory_store import MemoryStore
from .models import (
    ContinuityReport,
    Memory,
    MemoryKind,
    MemoryScope,
    ScoredMemory,
    StoryElement,
    StoryElementType,
    StorySource,
)

STORY_ELEMENT_IMPORTANCE = 8
RELATED_LIMIT = 20

_CONSISTENT_SCORE = 0.8
_UNGROUNDED_SCORE = 0.3
_EXCERPT_CHARS = 100


def element_content(element: StoryElement) -> str:
    """Text that gets embedded for an element."""
    details = json.dumps(element.details, default=str, sort_keys=True)
    return f"{element.name}: {element.description}. {details}"


class StoryBibleIndex:
    """Indexes story elements and finds the ones related to a passage."""

    def __init__(self, store: MemoryStore, min_similarity: float = 0.6):
        self.store = store
        self.min_similarity = min_similarity

    async def index_element(self, element: StoryElement, scope: MemoryScope) -> Memory | None:
        """Store an element as a document-scoped memory.

        Returns:
            The stored memory, or None when the scope has no document
        """
        if not scope.document_id:
            logger.warning(f"Cannot index story element '{element.name}' without a document_id")
            return None

        return await self.store.store(
            element_content(element),
            MemoryKind.STORY_ELEMENT,
            scope,
            importance=STORY_ELEMENT_IMPORTANCE,
            tags=[element.element_type.value, element.slug],
            context=StorySource(element_type=element.element_type.value, name=element.name),
        )

    async def find_related(
        self,
        query: str,
        scope: MemoryScope,
        element_type: StoryElementType | None = None,
        limit: int = RELATED_LIMIT,
    ) -> list[ScoredMemory]:
        """Story elements of the scope's document related to ``query``.

        Args:
            query: Passage or search text
            scope: Must carry the document_id the elements were indexed under
            element_type: Optional filter on the element type tag
            limit: Maximum results
        """
        if not scope.document_id or limit <= 0:
            return []

        # other memories in the document compete for the same slots, so
        # read past the limit and cut after filtering
        results = await self.store.retrieve(
            query,
            scope,
            limit=limit * self.store.config.fetch_multiplier,
            min_similarity=self.min_similarity,
        )
        related = [r for r in results if r.memory.kind == MemoryKind.STORY_ELEMENT]
        if element_type is not None:
            related = [r for r in related if element_type.value in r.memory.tags]
        return related[:limit]

    async def continuity_report(self, new_content: str, scope: MemoryScope) -> ContinuityReport:
        """Check a new passage against the indexed story elements."""
        related = await self.find_related(new_content, scope)

        suggestions: list[str] = []
        if related:
            suggestions.append("Consider referencing established character traits")
            suggestions.append("Maintain consistency with previous world-building")

        lowered = new_content.lower()
        for item in related:
            context = item.memory.context
            if isinstance(context, StorySource) and context.name.lower() in lowered:
                suggestions.append(
                    f"Keep {context.name} consistent with: "
                    f"{item.memory.content[:_EXCERPT_CHARS]}"
                )

        return ContinuityReport(
            consistency_score=_CONSISTENT_SCORE if related else _UNGROUNDED_SCORE,
            warnings=[],
            suggestions=suggestions,
            related=related,
        )
