"""Ingest and document API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from knowledge_cache.api.dependencies import get_ingest_pipeline, get_vector_store
from knowledge_cache.core.errors import ModelInitializationFailure, StorageTransactionFailure
from knowledge_cache.ingest.pipeline import IngestPipeline
from knowledge_cache.ingest.types import ChunkingConfig
from knowledge_cache.models.dto import (
    ChunkResponse,
    DeleteResponse,
    DocumentResponse,
    IngestRequest,
    IngestResponse,
)
from knowledge_cache.models.entities import Document
from knowledge_cache.retrieval.vector_store import VectorStore

router = APIRouter()


@router.post("/ingest", response_model=IngestResponse, summary="Chunk, embed and store one document")
def ingest_document(
    request: IngestRequest,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> IngestResponse:
    chunking = None
    if request.chunking is not None:
        chunking = ChunkingConfig(
            mode=request.chunking.mode,
            size=request.chunking.size,
            overlap=request.chunking.overlap,
        )
    try:
        report = pipeline.ingest(request.document_id, request.text, chunking=chunking, title=request.title)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ModelInitializationFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return IngestResponse(**report.to_dict())


@router.get("/documents", response_model=list[DocumentResponse], summary="List stored documents, newest first")
def list_documents(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: VectorStore = Depends(get_vector_store),
) -> list[DocumentResponse]:
    return [_to_document_response(document) for document in store.list_documents(limit=limit, offset=offset)]


@router.get("/documents/{document_id}", response_model=DocumentResponse, summary="Describe a stored document")
def get_document(document_id: int, store: VectorStore = Depends(get_vector_store)) -> DocumentResponse:
    document = store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_document_response(document)


@router.get(
    "/documents/{document_id}/chunks",
    response_model=list[ChunkResponse],
    summary="List the stored chunks of a document",
)
def list_document_chunks(document_id: int, store: VectorStore = Depends(get_vector_store)) -> list[ChunkResponse]:
    if store.get_document(document_id) is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return [
        ChunkResponse(
            document_id=chunk.document_id,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            start_offset=chunk.start_offset,
            end_offset=chunk.end_offset,
            unit_count=chunk.unit_count,
            model_version=chunk.model_version,
            dim=chunk.dim,
            metadata=chunk.metadata,
        )
        for chunk in store.list_chunks(document_id)
    ]


@router.delete("/documents/{document_id}", response_model=DeleteResponse, summary="Delete a document and its chunks")
def delete_document(document_id: int, store: VectorStore = Depends(get_vector_store)) -> DeleteResponse:
    try:
        deleted = store.delete_document(document_id)
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return DeleteResponse(status="ok", deleted=1)


def _to_document_response(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        title=document.title,
        label=document.label,
        chunk_count=document.chunk_count,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


__all__ = ["router"]
