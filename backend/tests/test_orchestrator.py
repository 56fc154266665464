"""End-to-end tests for ingestion and querying."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowledge_cache.core.config import Settings
from knowledge_cache.core.errors import EmbeddingFailure, InvalidChunkConfig, ModelInitializationFailure
from knowledge_cache.ingest.embeddings import Embedder
from knowledge_cache.ingest.pipeline import IngestPipeline
from knowledge_cache.ingest.types import ChunkingConfig
from knowledge_cache.retrieval.knowledge_bases import KnowledgeBaseStore
from knowledge_cache.retrieval.search import QueryService
from knowledge_cache.retrieval.vector_store import VectorStore

APPLES = (
    "Apple orchards need pruning in late winter. Apples ripen in autumn and are picked by hand. "
    "Orchard growers store apples in cool cellars."
)
ROCKETS = (
    "Rockets burn liquid fuel to reach orbit. Rocket engines need oxidizer and propellant. "
    "Launch windows depend on orbital mechanics."
)


class _SelectiveEmbedder(Embedder):
    """Fails on passages containing a marker word."""

    def embed(self, text: str) -> list[float]:
        if "skip" in text.split():
            raise EmbeddingFailure("refused")
        return super().embed(text)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "unused.db",
        embedding_backend="hashed",
        embedding_model="hashed-bow",
        embedding_dim=256,
    )


@pytest.fixture
def store(database) -> VectorStore:
    return VectorStore(database)


@pytest.fixture
def kbs(database) -> KnowledgeBaseStore:
    return KnowledgeBaseStore(database)


@pytest.fixture
def pipeline(store: VectorStore, settings: Settings, embedder: Embedder) -> IngestPipeline:
    return IngestPipeline(store, settings, embedder)


@pytest.fixture
def service(store: VectorStore, kbs: KnowledgeBaseStore, settings: Settings, embedder: Embedder) -> QueryService:
    return QueryService(store, kbs, settings, embedder)


def test_long_document_round_trip(
    pipeline: IngestPipeline, service: QueryService, store: VectorStore, long_text: str
) -> None:
    report = pipeline.ingest(1, long_text, ChunkingConfig(mode="token", size=500, overlap=50), title="Doc One")
    assert report.chunks_stored == 3
    assert report.chunks_skipped == 0
    assert report.model_version == "hashed:hashed-bow"

    middle = store.get_chunk(1, 1)
    assert middle is not None
    result = service.query(middle.text, max_chunks=5, threshold=0.99)
    assert [(r.document_id, r.chunk_index) for r in result.ranked_chunks] == [(1, 1)]
    assert result.ranked_chunks[0].score == pytest.approx(1.0, abs=1e-5)
    assert result.sources[0].document_id == 1
    assert result.sources[0].relevance == pytest.approx(1.0, abs=1e-5)
    assert result.context_block.startswith("The following passages are relevant to the question:")
    assert "[Source 1: Doc One]\nw450" in result.context_block
    assert result.context_block.endswith("Answer using only the information in the passages above.")


def test_default_chunking_comes_from_settings(pipeline: IngestPipeline, long_text: str) -> None:
    assert pipeline.ingest(1, long_text).chunks_stored == 3


def test_reingest_replaces_chunks(pipeline: IngestPipeline, store: VectorStore, long_text: str) -> None:
    pipeline.ingest(1, long_text)
    pipeline.ingest(1, "A much shorter replacement document.")
    assert [chunk.text for chunk in store.list_chunks(1)] == ["A much shorter replacement document."]


def test_failed_chunks_are_skipped_and_reindexed(store: VectorStore, settings: Settings) -> None:
    embedder = _SelectiveEmbedder(model_name="hashed-bow", backend="hashed", dim=64)
    pipeline = IngestPipeline(store, settings, embedder)
    text = "a b c d e skip g h i j k l m n o"
    report = pipeline.ingest(3, text, ChunkingConfig(mode="token", size=5, overlap=0))
    assert report.chunks_stored == 2
    assert report.chunks_skipped == 1
    listed = store.list_chunks(3)
    assert [(c.chunk_index, c.text) for c in listed] == [(0, "a b c d e"), (1, "k l m n o")]


def test_invalid_chunking_fails_before_work(pipeline: IngestPipeline, store: VectorStore) -> None:
    with pytest.raises(InvalidChunkConfig):
        pipeline.ingest(1, "text", ChunkingConfig(mode="token", size=10, overlap=10))
    assert store.get_document(1) is None


def test_model_failure_keeps_stored_chunks(
    pipeline: IngestPipeline, store: VectorStore, settings: Settings, long_text: str
) -> None:
    pipeline.ingest(1, long_text)
    broken = IngestPipeline(store, settings, Embedder(model_name="x", backend="bogus"))
    with pytest.raises(ModelInitializationFailure):
        broken.ingest(1, "replacement text")
    assert len(store.list_chunks(1)) == 3


def test_knowledge_bases_isolate_results(
    pipeline: IngestPipeline, service: QueryService, kbs: KnowledgeBaseStore
) -> None:
    pipeline.ingest(1, APPLES, title="Orchards")
    pipeline.ingest(2, ROCKETS, title="Rocketry")
    fruit = kbs.create("Fruit", document_ids=[1])
    space = kbs.create("Space", document_ids=[2])

    in_space = service.query("apples orchard", max_chunks=10, threshold=0.0, knowledge_base_ids=[space.id])
    assert in_space.ranked_chunks
    assert {r.document_id for r in in_space.ranked_chunks} == {2}

    in_fruit = service.query("apples orchard", max_chunks=10, threshold=0.1, knowledge_base_ids=[fruit.id])
    assert {r.document_id for r in in_fruit.ranked_chunks} == {1}
    assert in_fruit.sources[0].label == "Orchards"


def test_scope_union_and_intersection(
    pipeline: IngestPipeline, service: QueryService, kbs: KnowledgeBaseStore
) -> None:
    pipeline.ingest(1, APPLES)
    pipeline.ingest(2, ROCKETS)
    fruit = kbs.create("Fruit", document_ids=[1])
    space = kbs.create("Space", document_ids=[2])

    both = service.query("orbit apples", max_chunks=10, threshold=0.0, knowledge_base_ids=[fruit.id, space.id])
    assert {r.document_id for r in both.ranked_chunks} == {1, 2}

    narrowed = service.query(
        "orbit apples",
        max_chunks=10,
        threshold=0.0,
        knowledge_base_ids=[fruit.id, space.id],
        document_ids=[2],
    )
    assert {r.document_id for r in narrowed.ranked_chunks} == {2}

    only_docs = service.query("orbit apples", max_chunks=10, threshold=0.0, document_ids=[1])
    assert {r.document_id for r in only_docs.ranked_chunks} == {1}


def test_unknown_knowledge_base_is_reported(
    pipeline: IngestPipeline, service: QueryService, kbs: KnowledgeBaseStore
) -> None:
    pipeline.ingest(1, APPLES)
    fruit = kbs.create("Fruit", document_ids=[1])

    missing = service.query("apples", max_chunks=3, threshold=0.0, knowledge_base_ids=["kb_missing"])
    assert missing.ranked_chunks == []
    assert missing.context_block == ""
    assert missing.unknown_knowledge_bases == ["kb_missing"]

    mixed = service.query("apples", max_chunks=3, threshold=0.0, knowledge_base_ids=[fruit.id, "kb_missing"])
    assert {r.document_id for r in mixed.ranked_chunks} == {1}
    assert mixed.unknown_knowledge_bases == ["kb_missing"]


def test_deleted_member_contributes_nothing(
    pipeline: IngestPipeline, service: QueryService, kbs: KnowledgeBaseStore, store: VectorStore
) -> None:
    pipeline.ingest(1, APPLES)
    fruit = kbs.create("Fruit", document_ids=[1])
    store.delete_document(1)

    result = service.query("apples", max_chunks=3, threshold=0.0, knowledge_base_ids=[fruit.id])
    assert result.ranked_chunks == []
    assert kbs.get(fruit.id).document_ids == {1}


def test_empty_scope_and_empty_corpus(service: QueryService) -> None:
    assert service.query("anything", max_chunks=3, threshold=0.0).ranked_chunks == []
    empty = service.query("anything", max_chunks=3, threshold=0.0, document_ids=[])
    assert empty.ranked_chunks == []
    assert empty.sources == []
    assert empty.context_block == ""


def test_threshold_bounds_scores(pipeline: IngestPipeline, service: QueryService) -> None:
    pipeline.ingest(1, APPLES, ChunkingConfig(mode="character", size=60, overlap=0))
    pipeline.ingest(2, ROCKETS, ChunkingConfig(mode="character", size=60, overlap=0))
    result = service.query("apples ripen in autumn", max_chunks=20, threshold=0.2)
    assert result.ranked_chunks
    assert all(r.score >= 0.2 for r in result.ranked_chunks)
    scores = [r.score for r in result.ranked_chunks]
    assert scores == sorted(scores, reverse=True)


def test_unembeddable_query_returns_nothing(pipeline: IngestPipeline, service: QueryService) -> None:
    pipeline.ingest(1, APPLES)
    assert service.query("@@@", max_chunks=3, threshold=0.0).ranked_chunks == []


@pytest.mark.parametrize(
    ("query_text", "max_chunks", "threshold"),
    [("   ", 3, 0.5), ("ok", 0, 0.5), ("ok", 21, 0.5), ("ok", 3, -0.1), ("ok", 3, 1.1)],
)
def test_query_validation(service: QueryService, query_text: str, max_chunks: int, threshold: float) -> None:
    with pytest.raises(ValueError):
        service.query(query_text, max_chunks=max_chunks, threshold=threshold)
