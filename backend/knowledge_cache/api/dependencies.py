"""Shared FastAPI dependencies."""

from __future__ import annotations

import threading
from functools import lru_cache

from knowledge_cache.core.config import Settings, get_settings
from knowledge_cache.db.sqlite import SQLiteDatabase
from knowledge_cache.ingest.embeddings import Embedder
from knowledge_cache.ingest.pipeline import IngestPipeline
from knowledge_cache.retrieval import KnowledgeBaseStore, QueryService, VectorStore

_DB: SQLiteDatabase | None = None
_EMBEDDER: Embedder | None = None
_VECTOR_STORE: VectorStore | None = None
_KNOWLEDGE_BASES: KnowledgeBaseStore | None = None
_PIPELINE: IngestPipeline | None = None
_QUERY_SERVICE: QueryService | None = None
# Providers call each other, so the guard is re-entrant.
_LOCK = threading.RLock()


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    with _LOCK:
        if _DB is None:
            db = SQLiteDatabase(get_app_settings().db_path)
            db.ensure_schema()
            _DB = db
        return _DB


def get_embedder() -> Embedder:
    """Process-wide embedder; the model itself loads on first use."""
    global _EMBEDDER
    with _LOCK:
        if _EMBEDDER is None:
            settings = get_app_settings()
            _EMBEDDER = Embedder(
                model_name=settings.embedding_model,
                backend=settings.embedding_backend,
                dim=settings.embedding_dim,
                max_input_chars=settings.max_input_chars,
                device=settings.embedding_device,
            )
        return _EMBEDDER


def get_vector_store() -> VectorStore:
    global _VECTOR_STORE
    with _LOCK:
        if _VECTOR_STORE is None:
            _VECTOR_STORE = VectorStore(get_database())
        return _VECTOR_STORE


def get_knowledge_bases() -> KnowledgeBaseStore:
    global _KNOWLEDGE_BASES
    with _LOCK:
        if _KNOWLEDGE_BASES is None:
            _KNOWLEDGE_BASES = KnowledgeBaseStore(get_database())
        return _KNOWLEDGE_BASES


def get_ingest_pipeline() -> IngestPipeline:
    global _PIPELINE
    with _LOCK:
        if _PIPELINE is None:
            _PIPELINE = IngestPipeline(
                vector_store=get_vector_store(),
                settings=get_app_settings(),
                embedder=get_embedder(),
            )
        return _PIPELINE


def get_query_service() -> QueryService:
    global _QUERY_SERVICE
    with _LOCK:
        if _QUERY_SERVICE is None:
            _QUERY_SERVICE = QueryService(
                vector_store=get_vector_store(),
                knowledge_bases=get_knowledge_bases(),
                settings=get_app_settings(),
                embedder=get_embedder(),
            )
        return _QUERY_SERVICE


def reset_dependencies() -> None:
    """Drop cached singletons so the next request rebuilds them."""
    global _DB, _EMBEDDER, _VECTOR_STORE, _KNOWLEDGE_BASES, _PIPELINE, _QUERY_SERVICE
    with _LOCK:
        if _DB is not None:
            _DB.close()
        if _EMBEDDER is not None:
            _EMBEDDER.dispose()
        _DB = None
        _EMBEDDER = None
        _VECTOR_STORE = None
        _KNOWLEDGE_BASES = None
        _PIPELINE = None
        _QUERY_SERVICE = None
    get_app_settings.cache_clear()
    get_settings.cache_clear()


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedder",
    "get_vector_store",
    "get_knowledge_bases",
    "get_ingest_pipeline",
    "get_query_service",
    "reset_dependencies",
]
