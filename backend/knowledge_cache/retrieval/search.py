"""Search orchestration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from knowledge_cache.core.config import Settings
from knowledge_cache.core.errors import EmbeddingFailure, UnknownKnowledgeBase
from knowledge_cache.core.logging import get_logger
from knowledge_cache.core.metrics import EMBEDDING_FAILURES
from knowledge_cache.ingest.embeddings import Embedder
from knowledge_cache.retrieval.context import SourceSummary, render_context, summarize_sources
from knowledge_cache.retrieval.knowledge_bases import KnowledgeBaseStore
from knowledge_cache.retrieval.similarity import SearchResult, rank
from knowledge_cache.retrieval.vector_store import VectorStore

logger = get_logger(__name__)

MAX_CHUNKS_LIMIT = 20


@dataclass(slots=True)
class QueryResult:
    ranked_chunks: list[SearchResult] = field(default_factory=list)
    sources: list[SourceSummary] = field(default_factory=list)
    context_block: str = ""
    unknown_knowledge_bases: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ranked_chunks": [result.to_dict() for result in self.ranked_chunks],
            "sources": [source.to_dict() for source in self.sources],
            "context_block": self.context_block,
            "unknown_knowledge_bases": list(self.unknown_knowledge_bases),
        }


class QueryService:
    """Embed a query, scan the scoped corpus and assemble a context block."""

    def __init__(
        self,
        vector_store: VectorStore,
        knowledge_bases: KnowledgeBaseStore,
        settings: Settings,
        embedder: Embedder,
    ) -> None:
        self.vector_store = vector_store
        self.knowledge_bases = knowledge_bases
        self.settings = settings
        self.embedder = embedder

    def query(
        self,
        query_text: str,
        max_chunks: int,
        threshold: float,
        knowledge_base_ids: Sequence[str] | None = None,
        document_ids: Iterable[int] | None = None,
    ) -> QueryResult:
        """Return the passages most similar to ``query_text``.

        The scope is the union of the given knowledge bases' members,
        intersected with ``document_ids`` when both are supplied. With neither,
        the whole corpus is searched. Unknown knowledge bases contribute
        nothing and are reported back on the result.
        """
        if not query_text or not query_text.strip():
            raise ValueError("Query text must not be blank")
        if isinstance(max_chunks, bool) or not isinstance(max_chunks, int) or not 1 <= max_chunks <= MAX_CHUNKS_LIMIT:
            raise ValueError(f"max_chunks must be an integer between 1 and {MAX_CHUNKS_LIMIT}")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")

        scope, unknown = self._resolve_scope(knowledge_base_ids, document_ids)
        result = QueryResult(unknown_knowledge_bases=unknown)
        if scope is not None and not scope:
            logger.info("Query scope is empty; returning no passages")
            return result

        self.embedder.initialize()
        try:
            query_vector = self.embedder.embed(query_text)
        except EmbeddingFailure as exc:
            EMBEDDING_FAILURES.inc()
            logger.warning("Query could not be embedded: %s", exc)
            return result

        ranked = rank(query_vector, self.vector_store.scan(scope), max_chunks, threshold)
        result.ranked_chunks = ranked
        result.sources = summarize_sources(ranked)
        result.context_block = render_context(
            ranked,
            header=self.settings.context_header,
            instruction=self.settings.context_instruction,
        )
        logger.info(
            "Query matched %s passages from %s documents",
            len(ranked),
            len(result.sources),
        )
        return result

    # ------------------------------------------------------------------

    def _resolve_scope(
        self,
        knowledge_base_ids: Sequence[str] | None,
        document_ids: Iterable[int] | None,
    ) -> tuple[set[int] | None, list[str]]:
        explicit = None if document_ids is None else {int(document_id) for document_id in document_ids}
        if knowledge_base_ids is None:
            return explicit, []

        members: set[int] = set()
        unknown: list[str] = []
        for kb_id in dict.fromkeys(knowledge_base_ids):
            try:
                knowledge_base = self.knowledge_bases.get(kb_id)
            except UnknownKnowledgeBase:
                logger.warning("Ignoring unknown knowledge base %s", kb_id, extra={"ctx_knowledge_base_id": kb_id})
                unknown.append(kb_id)
                continue
            expected_model = knowledge_base.embedding_model
            if expected_model and expected_model not in (self.embedder.model_name, self.embedder.model_version):
                logger.warning(
                    "Knowledge base %s expects model %s but queries use %s",
                    kb_id,
                    expected_model,
                    self.embedder.model_version,
                    extra={"ctx_knowledge_base_id": kb_id},
                )
            members.update(knowledge_base.document_ids)
        if explicit is not None:
            members &= explicit
        return members, unknown


__all__ = ["MAX_CHUNKS_LIMIT", "QueryResult", "QueryService"]
