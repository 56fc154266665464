"""Ingest pipeline orchestration."""

from __future__ import annotations

import time

from knowledge_cache.core.config import Settings
from knowledge_cache.core.errors import EmbeddingFailure
from knowledge_cache.core.logging import get_logger
from knowledge_cache.core.metrics import EMBEDDING_FAILURES, INGEST_DURATION
from knowledge_cache.ingest.chunker import build_chunk_payloads, chunk_text, validate_chunking
from knowledge_cache.ingest.embeddings import Embedder
from knowledge_cache.ingest.types import ChunkingConfig, EmbeddingPayload, IngestReport, TextChunk
from knowledge_cache.retrieval.vector_store import VectorStore

logger = get_logger(__name__)


class IngestPipeline:
    """Coordinate chunking, embeddings, and persistence for one document at a time."""

    def __init__(
        self,
        vector_store: VectorStore,
        settings: Settings,
        embedder: Embedder,
    ) -> None:
        self.vector_store = vector_store
        self.settings = settings
        self.embedder = embedder

    def default_chunking(self) -> ChunkingConfig:
        return ChunkingConfig(
            mode=self.settings.chunk_mode,
            size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
        )

    def ingest(
        self,
        document_id: int,
        raw_text: str,
        chunking: ChunkingConfig | None = None,
        title: str | None = None,
    ) -> IngestReport:
        """Chunk, embed and store ``raw_text``, replacing any earlier version.

        Chunks that fail to embed are logged and left out; the survivors are
        re-indexed densely. Model loading and storage failures propagate and
        leave the previously stored chunks untouched.
        """
        config = chunking or self.default_chunking()
        validate_chunking(config.mode, config.size, config.overlap)
        start_time = time.perf_counter()

        chunks = chunk_text(raw_text, mode=config.mode, size=config.size, overlap=config.overlap)
        if not chunks:
            logger.warning(
                "Document %s produced no chunks",
                document_id,
                extra={"ctx_document_id": document_id},
            )
        self.embedder.initialize()

        kept: list[TextChunk] = []
        vectors: list[list[float]] = []
        for chunk in chunks:
            try:
                vectors.append(self.embedder.embed(chunk.text))
            except EmbeddingFailure as exc:
                EMBEDDING_FAILURES.inc()
                logger.warning(
                    "Skipping chunk %s of document %s: %s",
                    chunk.chunk_index,
                    document_id,
                    exc,
                    extra={"ctx_document_id": document_id, "ctx_chunk_index": chunk.chunk_index},
                )
                continue
            kept.append(chunk)

        payloads = build_chunk_payloads(document_id, kept)
        embeddings = [
            EmbeddingPayload(
                document_id=document_id,
                chunk_index=payload.chunk_index,
                vector=vector,
                model_version=self.embedder.model_version,
            )
            for payload, vector in zip(payloads, vectors)
        ]
        stored = self.vector_store.replace_for_document(
            document_id,
            payloads,
            embeddings,
            title=title,
            source_text=raw_text,
        )

        INGEST_DURATION.labels(mode=config.mode).observe(time.perf_counter() - start_time)
        report = IngestReport(
            document_id=document_id,
            chunks_stored=stored,
            chunks_skipped=len(chunks) - len(kept),
            model_version=self.embedder.model_version,
        )
        logger.info(
            "Ingested document %s: %s chunks stored, %s skipped",
            document_id,
            report.chunks_stored,
            report.chunks_skipped,
            extra={"ctx_document_id": document_id},
        )
        return report


__all__ = ["IngestPipeline"]
