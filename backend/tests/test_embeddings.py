"""Tests for embedding utilities."""

from __future__ import annotations

import math
import threading
import time

import pytest

from knowledge_cache.core.errors import EmbeddingFailure, ModelInitializationFailure
from knowledge_cache.ingest.embeddings import Embedder


class _FakeArray:
    def __init__(self, values: list[float]) -> None:
        self._values = values

    def tolist(self) -> list[float]:
        return list(self._values)


class _FakeModel:
    def __init__(self, values: list[float] | None = None, error: Exception | None = None) -> None:
        self.values = values or [3.0, 4.0]
        self.error = error

    def encode(self, text: str, **kwargs) -> _FakeArray:
        if self.error is not None:
            raise self.error
        return _FakeArray(self.values)


class _CountingEmbedder(Embedder):
    def __init__(self, model: _FakeModel, dim: int = 2) -> None:
        super().__init__(model_name="fake", backend="sentence-transformers", dim=dim)
        self.fake = model
        self.loads = 0

    def _load(self):
        self.loads += 1
        time.sleep(0.05)
        return self.fake


def test_hashed_vectors_are_unit_length(embedder: Embedder) -> None:
    vector = embedder.embed("Retrieval augmented generation with cached passages")
    assert len(vector) == embedder.dim == 256
    assert math.isclose(sum(value * value for value in vector), 1.0, rel_tol=1e-9)


def test_hashed_vectors_are_deterministic(embedder: Embedder) -> None:
    assert embedder.embed("same text") == embedder.embed("same   text")
    assert embedder.model_version == "hashed:hashed-bow"


def test_input_is_truncated_before_embedding(embedder: Embedder) -> None:
    assert embedder.embed("alpha beta " * 200) == embedder.embed("alpha beta " * 100)


@pytest.mark.parametrize("text", ["", "   ", "@@@ ### $$$"])
def test_empty_after_cleaning_raises(embedder: Embedder, text: str) -> None:
    with pytest.raises(EmbeddingFailure):
        embedder.embed(text)


def test_unknown_backend_fails_to_initialize() -> None:
    embedder = Embedder(model_name="x", backend="nope")
    with pytest.raises(ModelInitializationFailure):
        embedder.initialize()
    assert embedder.is_initialized is False


def test_load_errors_are_wrapped_and_retried() -> None:
    class Broken(Embedder):
        attempts = 0

        def _load(self):
            Broken.attempts += 1
            raise RuntimeError("weights missing")

    embedder = Broken(model_name="broken")
    with pytest.raises(ModelInitializationFailure, match="weights missing"):
        embedder.embed("hello")
    with pytest.raises(ModelInitializationFailure):
        embedder.initialize()
    assert Broken.attempts == 2


def test_concurrent_first_use_loads_once() -> None:
    embedder = _CountingEmbedder(_FakeModel())
    threads = [threading.Thread(target=embedder.initialize) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert embedder.loads == 1
    assert embedder.is_initialized


def test_model_vectors_are_normalized() -> None:
    embedder = _CountingEmbedder(_FakeModel([3.0, 4.0]))
    assert embedder.embed("hello") == pytest.approx([0.6, 0.8])


def test_model_errors_become_embedding_failures() -> None:
    embedder = _CountingEmbedder(_FakeModel(error=RuntimeError("boom")))
    with pytest.raises(EmbeddingFailure):
        embedder.embed("hello")


def test_wrong_dimension_is_rejected() -> None:
    embedder = _CountingEmbedder(_FakeModel([1.0, 2.0, 3.0]), dim=2)
    with pytest.raises(EmbeddingFailure):
        embedder.embed("hello")


def test_zero_vector_is_rejected() -> None:
    embedder = _CountingEmbedder(_FakeModel([0.0, 0.0]))
    with pytest.raises(EmbeddingFailure):
        embedder.embed("hello")


def test_dispose_releases_model() -> None:
    embedder = _CountingEmbedder(_FakeModel())
    embedder.initialize()
    embedder.dispose()
    assert embedder.is_initialized is False
    embedder.embed("hello")
    assert embedder.loads == 2
