"""Embedding utilities."""

from __future__ import annotations

import hashlib
import logging
import math
import re
import threading
from typing import Any

from knowledge_cache.core.errors import EmbeddingFailure, ModelInitializationFailure
from knowledge_cache.utils.text import clean_for_embedding

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

BACKENDS = ("sentence-transformers", "hashed")
DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_MAX_INPUT_CHARS = 512


class Embedder:
    """Turns passages and queries into L2-normalized vectors.

    The model is loaded by :meth:`initialize`, at most once per instance even
    when several threads make the first call together. Construct one embedder
    per process and hand it to the components that need it.

    Two backends are available: ``sentence-transformers`` loads ``model_name``
    through the sentence-transformers library; ``hashed`` is a deterministic
    hashed bag-of-words model of width ``dim`` that needs no download.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        backend: str = "sentence-transformers",
        dim: int = 384,
        max_input_chars: int = DEFAULT_MAX_INPUT_CHARS,
        device: str | None = None,
    ) -> None:
        self.model_name = model_name
        self.backend = backend
        self.max_input_chars = max_input_chars
        self.device = device
        self._dim = dim
        self._model: Any = None
        self._ready = False
        self._init_lock = threading.Lock()

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def model_version(self) -> str:
        return f"{self.backend}:{self.model_name}"

    @property
    def is_initialized(self) -> bool:
        return self._ready

    def initialize(self) -> None:
        """Load the model once; raise ModelInitializationFailure on error."""
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            logger.info("Initializing embedding model %s", self.model_version)
            try:
                self._model = self._load()
            except ModelInitializationFailure:
                raise
            except Exception as exc:
                logger.error("Failed to load embedding model %s: %s", self.model_version, exc)
                raise ModelInitializationFailure(
                    f"Could not load embedding model {self.model_version}: {exc}"
                ) from exc
            self._ready = True
            logger.info("Embedding model %s ready (dim=%s)", self.model_version, self._dim)

    def embed(self, text: str) -> list[float]:
        """Embed one passage or query."""
        self.initialize()
        cleaned = clean_for_embedding(text or "", self.max_input_chars)
        if not cleaned:
            raise EmbeddingFailure("Text is empty after preprocessing")
        try:
            if self.backend == "hashed":
                vector = _hashed_vector(cleaned, self._dim)
            else:
                encoded = self._model.encode(cleaned, normalize_embeddings=True, convert_to_numpy=True)
                vector = [float(value) for value in encoded.tolist()]
        except Exception as exc:
            raise EmbeddingFailure(f"Model failed to embed text: {exc}") from exc

        if len(vector) != self._dim:
            raise EmbeddingFailure(f"Model returned {len(vector)} dimensions, expected {self._dim}")
        if not _normalize(vector):
            raise EmbeddingFailure("Text produced a zero vector")
        return vector

    def dispose(self) -> None:
        """Release the loaded model; the next call loads it again."""
        with self._init_lock:
            self._model = None
            self._ready = False

    def _load(self) -> Any:
        if self.backend == "hashed":
            if self._dim <= 0:
                raise ModelInitializationFailure(f"Hashed embeddings need a positive dim, got {self._dim}")
            return None
        if self.backend == "sentence-transformers":
            from sentence_transformers import SentenceTransformer

            model = SentenceTransformer(self.model_name, device=self.device)
            self._dim = int(model.get_sentence_embedding_dimension())
            return model
        raise ModelInitializationFailure(f"Unknown embedding backend: {self.backend!r}")


def _hashed_vector(text: str, dim: int) -> list[float]:
    vector = [0.0] * dim
    for token in _TOKEN_RE.findall(text.lower()):
        vector[_hash_token(token, dim)] += 1.0
    return vector


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> bool:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return False
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv
    return True


__all__ = ["Embedder", "BACKENDS", "DEFAULT_MODEL", "DEFAULT_MAX_INPUT_CHARS"]
