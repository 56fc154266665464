"""Tests for cosine similarity and ranking."""

from __future__ import annotations

import random

import pytest

from knowledge_cache.core.errors import DimensionMismatch
from knowledge_cache.models.entities import StoredEmbedding
from knowledge_cache.retrieval.similarity import cosine_similarity, rank


def _candidate(document_id: int, chunk_index: int, vector: list[float]) -> StoredEmbedding:
    return StoredEmbedding(
        document_id=document_id,
        chunk_index=chunk_index,
        text=f"doc {document_id} chunk {chunk_index}",
        vector=vector,
        model_version="test:model",
        source_label=f"Document {document_id}",
    )


def test_cosine_similarity_known_values() -> None:
    assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_stays_in_bounds() -> None:
    rng = random.Random(7)
    for _ in range(200):
        a = [rng.uniform(-5, 5) for _ in range(16)]
        b = [rng.uniform(-5, 5) for _ in range(16)]
        assert -1.0 <= cosine_similarity(a, b) <= 1.0
        assert cosine_similarity(a, a) <= 1.0


def test_cosine_similarity_rejects_mismatched_lengths() -> None:
    with pytest.raises(DimensionMismatch):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_rank_filters_by_threshold() -> None:
    candidates = [
        _candidate(1, 0, [1.0, 0.0]),
        _candidate(1, 1, [1.0, 1.0]),
        _candidate(2, 0, [0.0, 1.0]),
        _candidate(3, 0, [-1.0, 0.0]),
    ]
    results = rank([1.0, 0.0], candidates, top_k=10, threshold=0.5)
    assert [(r.document_id, r.chunk_index) for r in results] == [(1, 0), (1, 1)]
    assert all(result.score >= 0.5 for result in results)


def test_rank_orders_by_score_then_position() -> None:
    candidates = [
        _candidate(2, 0, [1.0, 0.0]),
        _candidate(1, 3, [1.0, 0.0]),
        _candidate(1, 1, [1.0, 0.0]),
        _candidate(0, 9, [1.0, 2.0]),
    ]
    results = rank([1.0, 0.0], candidates, top_k=10, threshold=0.0)
    assert [(r.document_id, r.chunk_index) for r in results] == [(1, 1), (1, 3), (2, 0), (0, 9)]
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)


def test_rank_returns_at_most_top_k() -> None:
    rng = random.Random(11)
    candidates = [_candidate(i, 0, [rng.uniform(0.1, 1), rng.uniform(0.1, 1)]) for i in range(50)]
    results = rank([1.0, 1.0], candidates, top_k=5, threshold=0.0)
    assert len(results) == 5
    best = max(cosine_similarity([1.0, 1.0], c.vector) for c in candidates)
    assert results[0].score == pytest.approx(best)


def test_rank_skips_dimension_mismatches() -> None:
    candidates = [_candidate(1, 0, [1.0, 0.0, 0.0]), _candidate(2, 0, [1.0, 0.0])]
    results = rank([1.0, 0.0], candidates, top_k=3, threshold=0.0)
    assert [(r.document_id, r.chunk_index) for r in results] == [(2, 0)]


def test_rank_with_no_candidates() -> None:
    assert rank([1.0, 0.0], [], top_k=3, threshold=0.2) == []


@pytest.mark.parametrize(("top_k", "threshold"), [(0, 0.5), (-1, 0.5), (3, -0.1), (3, 1.5)])
def test_rank_validates_parameters(top_k: int, threshold: float) -> None:
    with pytest.raises(ValueError):
        rank([1.0], [_candidate(1, 0, [1.0])], top_k=top_k, threshold=threshold)


def test_rank_carries_labels_and_metadata() -> None:
    candidate = _candidate(4, 2, [0.5, 0.5])
    candidate.metadata = {"token_start": 10}
    result = rank([1.0, 1.0], [candidate], top_k=1, threshold=0.9)[0]
    assert result.source_label == "Document 4"
    assert result.text == "doc 4 chunk 2"
    assert result.metadata == {"token_start": 10}
