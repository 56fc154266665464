"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class Document:
    id: int
    title: str | None
    source_text: str | None
    created_at: datetime
    updated_at: datetime
    chunk_count: int = 0

    @property
    def label(self) -> str:
        return self.title or f"Document {self.id}"


@dataclass(slots=True)
class StoredEmbedding:
    """One persisted chunk together with its vector."""

    document_id: int
    chunk_index: int
    text: str
    vector: list[float]
    model_version: str
    start_offset: int = 0
    end_offset: int = 0
    unit_count: int = 0
    source_label: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dim(self) -> int:
        return len(self.vector)


@dataclass(slots=True)
class KnowledgeBase:
    id: str
    name: str
    description: str
    document_ids: set[int]
    embedding_model: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class StoreStats:
    total_embeddings: int
    distinct_documents: int
    avg_chunks_per_document: float
    avg_chunk_chars: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_embeddings": self.total_embeddings,
            "distinct_documents": self.distinct_documents,
            "avg_chunks_per_document": self.avg_chunks_per_document,
            "avg_chunk_chars": self.avg_chunk_chars,
        }
