"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ChunkingOptions(BaseModel):
    mode: Literal["token", "character", "page"] = "token"
    size: int = Field(default=500, gt=0)
    overlap: int = Field(default=50, ge=0)


class IngestRequest(BaseModel):
    document_id: int = Field(description="Caller-assigned document identifier")
    text: str = Field(description="Raw document text")
    title: str | None = None
    chunking: ChunkingOptions | None = Field(default=None, description="Falls back to configured defaults")


class IngestResponse(BaseModel):
    document_id: int
    chunks_stored: int
    chunks_skipped: int
    model_version: str | None = None


class DocumentResponse(BaseModel):
    id: int
    title: str | None
    label: str
    chunk_count: int
    created_at: datetime
    updated_at: datetime


class ChunkResponse(BaseModel):
    document_id: int
    chunk_index: int
    text: str
    start_offset: int
    end_offset: int
    unit_count: int
    model_version: str
    dim: int
    metadata: dict[str, Any]


class QueryRequest(BaseModel):
    query: str
    max_chunks: int = Field(ge=1, le=20)
    threshold: float = Field(ge=0.0, le=1.0)
    knowledge_base_ids: list[str] | None = None
    document_ids: list[int] | None = None


class ChunkResult(BaseModel):
    document_id: int
    chunk_index: int
    text: str
    score: float
    source_label: str
    metadata: dict[str, Any]


class SourceResult(BaseModel):
    document_id: int
    label: str
    relevance: float
    mean_score: float
    chunk_count: int


class QueryResponse(BaseModel):
    ranked_chunks: list[ChunkResult]
    sources: list[SourceResult]
    context_block: str
    unknown_knowledge_bases: list[str]


class StatsResponse(BaseModel):
    total_embeddings: int
    distinct_documents: int
    avg_chunks_per_document: float
    avg_chunk_chars: float


class KnowledgeBaseStatsResponse(StatsResponse):
    knowledge_base_id: str
    member_documents: int


class KnowledgeBaseCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    embedding_model: str | None = None
    document_ids: list[int] = Field(default_factory=list)


class KnowledgeBaseResponse(BaseModel):
    id: str
    name: str
    description: str
    embedding_model: str | None
    document_ids: list[int]
    created_at: datetime
    updated_at: datetime


class MembershipRequest(BaseModel):
    document_id: int


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    deleted: int


__all__ = [
    "ChunkingOptions",
    "IngestRequest",
    "IngestResponse",
    "DocumentResponse",
    "ChunkResponse",
    "QueryRequest",
    "ChunkResult",
    "SourceResult",
    "QueryResponse",
    "StatsResponse",
    "KnowledgeBaseStatsResponse",
    "KnowledgeBaseCreateRequest",
    "KnowledgeBaseResponse",
    "MembershipRequest",
    "DeleteResponse",
]
