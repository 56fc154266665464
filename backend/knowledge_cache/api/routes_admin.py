"""Administrative routes for Knowledge Cache."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from knowledge_cache.api.dependencies import get_knowledge_bases, get_vector_store
from knowledge_cache.core.errors import StorageTransactionFailure, UnknownKnowledgeBase
from knowledge_cache.core.metrics import metrics_response
from knowledge_cache.models.dto import (
    DeleteResponse,
    KnowledgeBaseCreateRequest,
    KnowledgeBaseResponse,
    KnowledgeBaseStatsResponse,
    MembershipRequest,
    StatsResponse,
)
from knowledge_cache.models.entities import KnowledgeBase
from knowledge_cache.retrieval.knowledge_bases import KnowledgeBaseStore
from knowledge_cache.retrieval.vector_store import VectorStore

router = APIRouter()


@router.get("/stats", response_model=StatsResponse, summary="Embedding store statistics")
def get_stats(store: VectorStore = Depends(get_vector_store)) -> StatsResponse:
    return StatsResponse(**store.stats().to_dict())


@router.get("/knowledge-bases", response_model=list[KnowledgeBaseResponse], summary="List knowledge bases")
def list_knowledge_bases(kbs: KnowledgeBaseStore = Depends(get_knowledge_bases)) -> list[KnowledgeBaseResponse]:
    return [_to_response(kb) for kb in kbs.list()]


@router.post("/knowledge-bases", response_model=KnowledgeBaseResponse, summary="Create a knowledge base")
def create_knowledge_base(
    request: KnowledgeBaseCreateRequest,
    kbs: KnowledgeBaseStore = Depends(get_knowledge_bases),
) -> KnowledgeBaseResponse:
    try:
        kb = kbs.create(
            name=request.name,
            description=request.description,
            embedding_model=request.embedding_model,
            document_ids=request.document_ids,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _to_response(kb)


@router.get("/knowledge-bases/{kb_id}", response_model=KnowledgeBaseResponse, summary="Describe a knowledge base")
def get_knowledge_base(kb_id: str, kbs: KnowledgeBaseStore = Depends(get_knowledge_bases)) -> KnowledgeBaseResponse:
    try:
        return _to_response(kbs.get(kb_id))
    except UnknownKnowledgeBase as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get(
    "/knowledge-bases/{kb_id}/stats",
    response_model=KnowledgeBaseStatsResponse,
    summary="Chunk statistics over a knowledge base's documents",
)
def get_knowledge_base_stats(
    kb_id: str,
    kbs: KnowledgeBaseStore = Depends(get_knowledge_bases),
    store: VectorStore = Depends(get_vector_store),
) -> KnowledgeBaseStatsResponse:
    try:
        kb = kbs.get(kb_id)
    except UnknownKnowledgeBase as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return KnowledgeBaseStatsResponse(
        knowledge_base_id=kb.id,
        member_documents=len(kb.document_ids),
        **store.stats(kb.document_ids).to_dict(),
    )


@router.delete("/knowledge-bases/{kb_id}", response_model=DeleteResponse, summary="Delete a knowledge base")
def delete_knowledge_base(kb_id: str, kbs: KnowledgeBaseStore = Depends(get_knowledge_bases)) -> DeleteResponse:
    try:
        deleted = kbs.delete(kb_id)
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    return DeleteResponse(status="ok", deleted=1)


@router.post(
    "/knowledge-bases/{kb_id}/documents",
    response_model=KnowledgeBaseResponse,
    summary="Add a document to a knowledge base",
)
def add_knowledge_base_document(
    kb_id: str,
    request: MembershipRequest,
    kbs: KnowledgeBaseStore = Depends(get_knowledge_bases),
) -> KnowledgeBaseResponse:
    try:
        kbs.add_document(kb_id, request.document_id)
        return _to_response(kbs.get(kb_id))
    except UnknownKnowledgeBase as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.delete(
    "/knowledge-bases/{kb_id}/documents/{document_id}",
    response_model=DeleteResponse,
    summary="Remove a document from a knowledge base",
)
def remove_knowledge_base_document(
    kb_id: str,
    document_id: int,
    kbs: KnowledgeBaseStore = Depends(get_knowledge_bases),
) -> DeleteResponse:
    try:
        removed = kbs.remove_document(kb_id, document_id)
    except UnknownKnowledgeBase as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageTransactionFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return DeleteResponse(status="ok" if removed else "noop", deleted=int(removed))


@router.get("/metrics", summary="Prometheus metrics")
def get_metrics():
    return metrics_response()


def _to_response(kb: KnowledgeBase) -> KnowledgeBaseResponse:
    return KnowledgeBaseResponse(
        id=kb.id,
        name=kb.name,
        description=kb.description,
        embedding_model=kb.embedding_model,
        document_ids=sorted(kb.document_ids),
        created_at=kb.created_at,
        updated_at=kb.updated_at,
    )


__all__ = ["router"]
