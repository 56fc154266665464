"""Exception hierarchy for Knowledge Cache."""

from __future__ import annotations


class KnowledgeCacheError(Exception):
    """Base class for errors raised by the retrieval core."""


class InvalidChunkConfig(KnowledgeCacheError, ValueError):
    """Chunking parameters were rejected before any work began."""


class ModelInitializationFailure(KnowledgeCacheError):
    """The embedding model could not be loaded."""


class EmbeddingFailure(KnowledgeCacheError):
    """A single passage or query could not be embedded."""


class DimensionMismatch(KnowledgeCacheError, ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StorageTransactionFailure(KnowledgeCacheError):
    """An atomic write was rolled back; persisted state is unchanged."""


class UnknownKnowledgeBase(KnowledgeCacheError, LookupError):
    """No knowledge base exists with the requested id."""

    def __init__(self, knowledge_base_id: str) -> None:
        super().__init__(f"Unknown knowledge base: {knowledge_base_id}")
        self.knowledge_base_id = knowledge_base_id


__all__ = [
    "KnowledgeCacheError",
    "InvalidChunkConfig",
    "ModelInitializationFailure",
    "EmbeddingFailure",
    "DimensionMismatch",
    "StorageTransactionFailure",
    "UnknownKnowledgeBase",
]
