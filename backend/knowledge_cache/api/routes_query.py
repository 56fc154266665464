"""Query API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from knowledge_cache.api.dependencies import get_query_service
from knowledge_cache.core.errors import ModelInitializationFailure
from knowledge_cache.models.dto import QueryRequest, QueryResponse
from knowledge_cache.retrieval.search import QueryService

router = APIRouter()


@router.post("/query", response_model=QueryResponse, summary="Retrieve passages relevant to a query")
def run_query(
    request: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> QueryResponse:
    try:
        result = service.query(
            query_text=request.query,
            max_chunks=request.max_chunks,
            threshold=request.threshold,
            knowledge_base_ids=request.knowledge_base_ids,
            document_ids=request.document_ids,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ModelInitializationFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return QueryResponse(**result.to_dict())


__all__ = ["router"]
