"""Retrieval orchestration components."""

from .vector_store import VectorStore
from .similarity import SearchResult, cosine_similarity, rank
from .knowledge_bases import KnowledgeBaseStore
from .search import QueryResult, QueryService

__all__ = [
    "VectorStore",
    "SearchResult",
    "cosine_similarity",
    "rank",
    "KnowledgeBaseStore",
    "QueryResult",
    "QueryService",
]
