"""Render ranked passages into a context block for a downstream answerer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from knowledge_cache.core.config import DEFAULT_CONTEXT_HEADER, DEFAULT_CONTEXT_INSTRUCTION
from knowledge_cache.retrieval.similarity import SearchResult


@dataclass(slots=True)
class SourceSummary:
    document_id: int
    label: str
    relevance: float
    mean_score: float
    chunk_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "label": self.label,
            "relevance": self.relevance,
            "mean_score": self.mean_score,
            "chunk_count": self.chunk_count,
        }


def summarize_sources(results: Sequence[SearchResult]) -> list[SourceSummary]:
    """Group results by document; relevance is the best chunk score."""
    grouped: dict[int, list[SearchResult]] = {}
    for result in results:
        grouped.setdefault(result.document_id, []).append(result)
    summaries = [
        SourceSummary(
            document_id=document_id,
            label=items[0].source_label,
            relevance=max(item.score for item in items),
            mean_score=sum(item.score for item in items) / len(items),
            chunk_count=len(items),
        )
        for document_id, items in grouped.items()
    ]
    summaries.sort(key=lambda summary: (-summary.relevance, summary.document_id))
    return summaries


def render_context(
    results: Sequence[SearchResult],
    header: str = DEFAULT_CONTEXT_HEADER,
    instruction: str = DEFAULT_CONTEXT_INSTRUCTION,
) -> str:
    """Number each passage with its source label; empty results render nothing."""
    if not results:
        return ""
    passages = [
        f"[Source {position}: {result.source_label}]\n{result.text}"
        for position, result in enumerate(results, start=1)
    ]
    return "\n\n".join([header, *passages, instruction])


__all__ = [
    "SourceSummary",
    "summarize_sources",
    "render_context",
]
