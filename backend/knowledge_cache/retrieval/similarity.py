"""Cosine similarity and top-K ranking over stored embeddings."""

from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from knowledge_cache.core.errors import DimensionMismatch
from knowledge_cache.core.metrics import DIMENSION_MISMATCHES
from knowledge_cache.models.entities import StoredEmbedding

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchResult:
    document_id: int
    chunk_index: int
    text: str
    score: float
    source_label: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "text": self.text,
            "score": self.score,
            "source_label": self.source_label,
            "metadata": dict(self.metadata),
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine of the angle between ``a`` and ``b``.

    Zero-norm vectors score 0.0. The result is clamped to [-1, 1] so rounding
    never pushes a score outside its range.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


def rank(
    query_vector: Sequence[float],
    candidates: Iterable[StoredEmbedding],
    top_k: int,
    threshold: float,
) -> list[SearchResult]:
    """Score candidates against the query and keep the best ``top_k``.

    Candidates scoring below ``threshold`` are dropped and candidates of a
    different dimension are skipped. Results are ordered by descending score,
    ties broken by ascending ``(document_id, chunk_index)``.
    """
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
        raise ValueError(f"top_k must be a positive integer, got {top_k!r}")
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold!r}")

    query = list(query_vector)
    passing: list[SearchResult] = []
    mismatched = 0
    for candidate in candidates:
        try:
            score = cosine_similarity(query, candidate.vector)
        except DimensionMismatch:
            mismatched += 1
            continue
        if score < threshold:
            continue
        passing.append(
            SearchResult(
                document_id=candidate.document_id,
                chunk_index=candidate.chunk_index,
                text=candidate.text,
                score=score,
                source_label=candidate.source_label,
                metadata=dict(candidate.metadata),
            )
        )

    if mismatched:
        DIMENSION_MISMATCHES.inc(mismatched)
        logger.warning(
            "Skipped %s candidates whose dimension differs from the query (%s)",
            mismatched,
            len(query),
        )
    return heapq.nsmallest(top_k, passing, key=_ordering)


def _ordering(result: SearchResult) -> tuple[float, int, int]:
    return (-result.score, result.document_id, result.chunk_index)


__all__ = ["SearchResult", "cosine_similarity", "rank"]
