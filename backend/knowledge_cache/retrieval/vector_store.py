"""Durable chunk and vector storage."""

from __future__ import annotations

import sqlite3
import threading
import weakref
from array import array
from typing import Iterable, Iterator, Sequence

import orjson

from knowledge_cache.core.errors import StorageTransactionFailure
from knowledge_cache.core.logging import get_logger
from knowledge_cache.core.metrics import INDEX_SIZE
from knowledge_cache.db.sqlite import SQLiteDatabase
from knowledge_cache.ingest.types import ChunkPayload, EmbeddingPayload
from knowledge_cache.models.entities import Document, StoredEmbedding, StoreStats
from knowledge_cache.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)

SCAN_BATCH_SIZE = 500

_SELECT_EMBEDDINGS = """
    SELECT
      embeddings.document_id,
      embeddings.chunk_index,
      embeddings.text,
      embeddings.start_offset,
      embeddings.end_offset,
      embeddings.unit_count,
      embeddings.vector,
      embeddings.dim,
      embeddings.model_version,
      embeddings.meta_json,
      documents.title
    FROM embeddings
    JOIN documents ON documents.id = embeddings.document_id
"""


_SELECT_DOCUMENTS = """
    SELECT
      documents.id,
      documents.title,
      documents.source_text,
      documents.created_at,
      documents.updated_at,
      (SELECT COUNT(*) FROM embeddings WHERE embeddings.document_id = documents.id) AS chunk_count
    FROM documents
"""


class VectorStore:
    """Passive record store keyed by ``(document_id, chunk_index)``.

    Writes for one document are serialized by a per-document lock and run in a
    single transaction; readers never observe a half-replaced document. The
    store computes no similarities itself.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self._locks: weakref.WeakValueDictionary[int, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def replace_for_document(
        self,
        document_id: int,
        chunks: Sequence[ChunkPayload],
        embeddings: Sequence[EmbeddingPayload],
        title: str | None = None,
        source_text: str | None = None,
    ) -> int:
        """Atomically swap every stored chunk of ``document_id`` for the new set."""
        records = _pair_records(document_id, chunks, embeddings)
        now = now_ms()
        with self._document_lock(document_id):
            try:
                with self.db.transaction() as cursor:
                    cursor.execute(
                        """
                        INSERT INTO documents (id, title, source_text, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                          title = COALESCE(excluded.title, documents.title),
                          source_text = COALESCE(excluded.source_text, documents.source_text),
                          updated_at = excluded.updated_at
                        """,
                        [document_id, title, source_text, now, now],
                    )
                    replaced = cursor.execute(
                        "DELETE FROM embeddings WHERE document_id = ?",
                        [document_id],
                    ).rowcount
                    self._insert_records(cursor, records, now)
            except sqlite3.Error as exc:
                logger.error(
                    "Replacing embeddings for document %s failed: %s",
                    document_id,
                    exc,
                    extra={"ctx_document_id": document_id},
                )
                raise StorageTransactionFailure(
                    f"Could not replace embeddings for document {document_id}: {exc}"
                ) from exc
        logger.info(
            "Stored %s embeddings for document %s (replaced %s)",
            len(records),
            document_id,
            replaced,
            extra={"ctx_document_id": document_id},
        )
        self._update_index_metric()
        return len(records)

    def scan(self, document_ids: Iterable[int] | None = None) -> Iterator[StoredEmbedding]:
        """Return every stored embedding, or only those of ``document_ids``.

        Ordering is unspecified. An empty id collection yields nothing.
        """
        if document_ids is None:
            rows = self.db.query(_SELECT_EMBEDDINGS, [])
        else:
            rows = []
            for batch, placeholders in _id_batches(document_ids):
                rows.extend(
                    self.db.query(
                        f"{_SELECT_EMBEDDINGS} WHERE embeddings.document_id IN ({placeholders})",
                        batch,
                    )
                )
        return _iter_records(rows)

    def get_chunk(self, document_id: int, chunk_index: int) -> StoredEmbedding | None:
        row = self.db.execute(
            f"{_SELECT_EMBEDDINGS} WHERE embeddings.document_id = ? AND embeddings.chunk_index = ?",
            [document_id, chunk_index],
        ).fetchone()
        if row is None:
            return None
        return _row_to_embedding(row)

    def list_chunks(self, document_id: int) -> list[StoredEmbedding]:
        rows = self.db.query(
            f"{_SELECT_EMBEDDINGS} WHERE embeddings.document_id = ? ORDER BY embeddings.chunk_index",
            [document_id],
        )
        return list(_iter_records(rows))

    def get_document(self, document_id: int) -> Document | None:
        row = self.db.execute(f"{_SELECT_DOCUMENTS} WHERE documents.id = ?", [document_id]).fetchone()
        if row is None:
            return None
        return _row_to_document(row)

    def list_documents(self, limit: int = 20, offset: int = 0) -> list[Document]:
        """Page through stored documents, newest first."""
        if limit <= 0 or offset < 0:
            raise ValueError("limit must be positive and offset non-negative")
        rows = self.db.query(
            f"{_SELECT_DOCUMENTS} ORDER BY documents.created_at DESC, documents.id DESC LIMIT ? OFFSET ?",
            [limit, offset],
        )
        return [_row_to_document(row) for row in rows]

    def delete_document(self, document_id: int) -> bool:
        """Delete a document and, by cascade, all of its chunks and vectors."""
        with self._document_lock(document_id):
            try:
                with self.db.transaction() as cursor:
                    cursor.execute("DELETE FROM embeddings WHERE document_id = ?", [document_id])
                    deleted = cursor.execute("DELETE FROM documents WHERE id = ?", [document_id]).rowcount
            except sqlite3.Error as exc:
                raise StorageTransactionFailure(f"Could not delete document {document_id}: {exc}") from exc
        if deleted:
            logger.info("Deleted document %s", document_id, extra={"ctx_document_id": document_id})
        self._update_index_metric()
        return deleted > 0

    def stats(self, document_ids: Iterable[int] | None = None) -> StoreStats:
        """Chunk counts and sizes for the whole store, or only ``document_ids``."""
        sql = (
            "SELECT COUNT(*) AS total, COUNT(DISTINCT document_id) AS documents,"
            " COALESCE(SUM(LENGTH(text)), 0) AS chars FROM embeddings"
        )
        if document_ids is None:
            rows = [self.db.execute(sql).fetchone()]
        else:
            rows = [
                self.db.execute(f"{sql} WHERE document_id IN ({placeholders})", batch).fetchone()
                for batch, placeholders in _id_batches(document_ids)
            ]
        total = sum(int(row["total"]) for row in rows)
        documents = sum(int(row["documents"]) for row in rows)
        chars = sum(int(row["chars"]) for row in rows)
        return StoreStats(
            total_embeddings=total,
            distinct_documents=documents,
            avg_chunks_per_document=round(total / documents, 2) if documents else 0.0,
            avg_chunk_chars=round(chars / total, 2) if total else 0.0,
        )

    # Internal helpers -------------------------------------------------

    def _insert_records(
        self,
        cursor: sqlite3.Cursor,
        records: Sequence[tuple[ChunkPayload, EmbeddingPayload]],
        now: int,
    ) -> None:
        cursor.executemany(
            """
            INSERT INTO embeddings (
              document_id, chunk_index, text, start_offset, end_offset, unit_count,
              vector, dim, model_version, meta_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    chunk.document_id,
                    chunk.chunk_index,
                    chunk.text,
                    chunk.start_offset,
                    chunk.end_offset,
                    chunk.unit_count,
                    pack_vector(embedding.vector),
                    embedding.dim,
                    embedding.model_version,
                    orjson.dumps(chunk.metadata).decode("utf-8"),
                    now,
                )
                for chunk, embedding in records
            ],
        )

    def _document_lock(self, document_id: int) -> threading.Lock:
        # Entries vanish once no caller holds the lock.
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[document_id] = lock
            return lock

    def _update_index_metric(self) -> None:
        INDEX_SIZE.set(self.stats().total_embeddings)


def pack_vector(vector: Sequence[float]) -> bytes:
    """Serialize a vector as packed float32."""
    return array("f", vector).tobytes()


def unpack_vector(blob: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _id_batches(document_ids: Iterable[int]) -> Iterator[tuple[list[int], str]]:
    ids = sorted(set(document_ids))
    for start in range(0, len(ids), SCAN_BATCH_SIZE):
        batch = ids[start : start + SCAN_BATCH_SIZE]
        yield batch, ",".join("?" for _ in batch)


def _pair_records(
    document_id: int,
    chunks: Sequence[ChunkPayload],
    embeddings: Sequence[EmbeddingPayload],
) -> list[tuple[ChunkPayload, EmbeddingPayload]]:
    if len(chunks) != len(embeddings):
        raise ValueError(f"Got {len(chunks)} chunks but {len(embeddings)} embeddings")
    records: list[tuple[ChunkPayload, EmbeddingPayload]] = []
    dims: set[int] = set()
    for expected, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
        if chunk.document_id != document_id or embedding.document_id != document_id:
            raise ValueError(f"Chunk {expected} does not belong to document {document_id}")
        if chunk.chunk_index != expected or embedding.chunk_index != expected:
            raise ValueError("Chunk indexes must be dense, ordered and start at 0")
        if embedding.dim == 0:
            raise ValueError(f"Chunk {expected} has an empty vector")
        dims.add(embedding.dim)
        records.append((chunk, embedding))
    if len(dims) > 1:
        raise ValueError(f"Embeddings for one document must share a dimension, got {sorted(dims)}")
    return records


def _iter_records(rows: Iterable[sqlite3.Row]) -> Iterator[StoredEmbedding]:
    for row in rows:
        record = _row_to_embedding(row)
        if record is not None:
            yield record


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        title=row["title"],
        source_text=row["source_text"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
        chunk_count=int(row["chunk_count"]),
    )


def _row_to_embedding(row: sqlite3.Row) -> StoredEmbedding | None:
    blob = row["vector"]
    if len(blob) % 4 or len(blob) // 4 != row["dim"]:
        logger.warning(
            "Skipping corrupt vector for document %s chunk %s",
            row["document_id"],
            row["chunk_index"],
        )
        return None
    document_id = row["document_id"]
    return StoredEmbedding(
        document_id=document_id,
        chunk_index=row["chunk_index"],
        text=row["text"],
        vector=unpack_vector(blob),
        model_version=row["model_version"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        unit_count=row["unit_count"],
        source_label=row["title"] or f"Document {document_id}",
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


__all__ = ["VectorStore", "pack_vector", "unpack_vector"]
