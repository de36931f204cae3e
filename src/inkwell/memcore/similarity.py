"""Cosine similarity and similarity-floor ranking."""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from .models import Memory, ScoredMemory


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 instead of raising when the vectors differ in length, are
    empty, or either has zero magnitude.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def rank(
    query_vector: Sequence[float],
    candidates: Iterable[Memory],
    min_similarity: float,
    limit: int,
) -> list[ScoredMemory]:
    """Score candidates against the query and keep the best ``limit``.

    Candidates below ``min_similarity`` are dropped. Results are ordered by
    similarity descending, then by ``created_at`` with the newest first.
    """
    if limit <= 0:
        return []

    scored = []
    for memory in candidates:
        similarity = cosine_similarity(query_vector, memory.embedding)
        if similarity >= min_similarity:
            scored.append(ScoredMemory(memory=memory, score=similarity, source="vector"))

    scored.sort(key=lambda s: (s.score, s.memory.created_at.timestamp()), reverse=True)
    return scored[:limit]
