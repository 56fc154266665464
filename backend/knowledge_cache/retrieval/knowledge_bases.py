"""Knowledge base membership persistence."""

from __future__ import annotations

import sqlite3
import uuid
from typing import Iterable

from knowledge_cache.core.errors import StorageTransactionFailure, UnknownKnowledgeBase
from knowledge_cache.core.logging import get_logger
from knowledge_cache.db.sqlite import SQLiteDatabase
from knowledge_cache.models.entities import KnowledgeBase
from knowledge_cache.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)

_SELECT_KB = "SELECT id, name, description, embedding_model, created_at, updated_at FROM knowledge_bases"


class KnowledgeBaseStore:
    """Named sets of document ids that scope a query.

    Membership is independent of stored documents: adding an id that was never
    ingested is allowed, and deleting a document leaves its memberships in
    place.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def create(
        self,
        name: str,
        description: str = "",
        embedding_model: str | None = None,
        document_ids: Iterable[int] = (),
    ) -> KnowledgeBase:
        if not name.strip():
            raise ValueError("Knowledge base name must not be blank")
        kb_id = f"kb_{uuid.uuid4().hex}"
        now = now_ms()
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO knowledge_bases (id, name, description, embedding_model, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [kb_id, name.strip(), description, embedding_model, now, now],
                )
                cursor.executemany(
                    """
                    INSERT OR IGNORE INTO knowledge_base_documents (knowledge_base_id, document_id, added_at)
                    VALUES (?, ?, ?)
                    """,
                    [(kb_id, int(document_id), now) for document_id in document_ids],
                )
        except sqlite3.Error as exc:
            raise StorageTransactionFailure(f"Could not create knowledge base {name!r}: {exc}") from exc
        logger.info("Created knowledge base %s (%s)", kb_id, name, extra={"ctx_knowledge_base_id": kb_id})
        return self.get(kb_id)

    def get(self, kb_id: str) -> KnowledgeBase:
        row = self.db.execute(f"{_SELECT_KB} WHERE id = ?", [kb_id]).fetchone()
        if row is None:
            raise UnknownKnowledgeBase(kb_id)
        return self._row_to_kb(row)

    def list(self) -> list[KnowledgeBase]:
        rows = self.db.query(f"{_SELECT_KB} ORDER BY created_at, id", [])
        return [self._row_to_kb(row) for row in rows]

    def add_document(self, kb_id: str, document_id: int) -> bool:
        """Add a member; returns False when it was already present."""
        now = now_ms()
        try:
            with self.db.transaction() as cursor:
                _require_kb(cursor, kb_id)
                added = cursor.execute(
                    """
                    INSERT OR IGNORE INTO knowledge_base_documents (knowledge_base_id, document_id, added_at)
                    VALUES (?, ?, ?)
                    """,
                    [kb_id, document_id, now],
                ).rowcount
                if added:
                    cursor.execute("UPDATE knowledge_bases SET updated_at = ? WHERE id = ?", [now, kb_id])
        except sqlite3.Error as exc:
            raise StorageTransactionFailure(f"Could not add document {document_id} to {kb_id}: {exc}") from exc
        return added > 0

    def remove_document(self, kb_id: str, document_id: int) -> bool:
        try:
            with self.db.transaction() as cursor:
                _require_kb(cursor, kb_id)
                removed = cursor.execute(
                    "DELETE FROM knowledge_base_documents WHERE knowledge_base_id = ? AND document_id = ?",
                    [kb_id, document_id],
                ).rowcount
                if removed:
                    cursor.execute("UPDATE knowledge_bases SET updated_at = ? WHERE id = ?", [now_ms(), kb_id])
        except sqlite3.Error as exc:
            raise StorageTransactionFailure(f"Could not remove document {document_id} from {kb_id}: {exc}") from exc
        return removed > 0

    def delete(self, kb_id: str) -> bool:
        try:
            with self.db.transaction() as cursor:
                deleted = cursor.execute("DELETE FROM knowledge_bases WHERE id = ?", [kb_id]).rowcount
        except sqlite3.Error as exc:
            raise StorageTransactionFailure(f"Could not delete knowledge base {kb_id}: {exc}") from exc
        if deleted:
            logger.info("Deleted knowledge base %s", kb_id, extra={"ctx_knowledge_base_id": kb_id})
        return deleted > 0

    # Internal helpers -------------------------------------------------

    def _member_ids(self, kb_id: str) -> set[int]:
        rows = self.db.query(
            "SELECT document_id FROM knowledge_base_documents WHERE knowledge_base_id = ?",
            [kb_id],
        )
        return {int(row["document_id"]) for row in rows}

    def _row_to_kb(self, row: sqlite3.Row) -> KnowledgeBase:
        return KnowledgeBase(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            document_ids=self._member_ids(row["id"]),
            embedding_model=row["embedding_model"],
            created_at=ms_to_datetime(row["created_at"]),
            updated_at=ms_to_datetime(row["updated_at"]),
        )


def _require_kb(cursor: sqlite3.Cursor, kb_id: str) -> None:
    if cursor.execute("SELECT 1 FROM knowledge_bases WHERE id = ?", [kb_id]).fetchone() is None:
        raise UnknownKnowledgeBase(kb_id)


__all__ = ["KnowledgeBaseStore"]
