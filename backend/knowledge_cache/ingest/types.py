"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ChunkingConfig:
    """Chunking policy for one ingestion call.

    ``size`` and ``overlap`` are measured in tokens for ``token`` mode and in
    characters for ``character`` and ``page`` mode.
    """

    mode: str = "token"
    size: int = 500
    overlap: int = 50


@dataclass(slots=True)
class TextChunk:
    """Passage produced by the chunker before it is bound to a document."""

    chunk_index: int
    text: str
    start_offset: int
    end_offset: int
    unit_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ChunkPayload:
    """Chunk bound to its document, ready for persistence."""

    document_id: int
    chunk_index: int
    text: str
    start_offset: int
    end_offset: int
    unit_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class EmbeddingPayload:
    """Embedding ready to be stored."""

    document_id: int
    chunk_index: int
    vector: list[float]
    model_version: str

    @property
    def dim(self) -> int:
        return len(self.vector)


@dataclass(slots=True)
class IngestReport:
    """Outcome of ingesting a single document."""

    document_id: int
    chunks_stored: int = 0
    chunks_skipped: int = 0
    model_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunks_stored": self.chunks_stored,
            "chunks_skipped": self.chunks_skipped,
            "model_version": self.model_version,
        }


__all__ = [
    "ChunkingConfig",
    "TextChunk",
    "ChunkPayload",
    "EmbeddingPayload",
    "IngestReport",
]
