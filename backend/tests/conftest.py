"""Test fixtures for Knowledge Cache."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KC_DB_PATH", str(tmp_path / "kc.db"))
    monkeypatch.setenv("KC_EMBEDDING_BACKEND", "hashed")
    monkeypatch.setenv("KC_EMBEDDING_MODEL", "hashed-bow")
    monkeypatch.delenv("KC_CONFIG", raising=False)

    from knowledge_cache.api import dependencies as deps

    deps.reset_dependencies()
    yield
    deps.reset_dependencies()


@pytest.fixture
def database(tmp_path: Path):
    from knowledge_cache.db.sqlite import SQLiteDatabase

    db = SQLiteDatabase(tmp_path / "store.db")
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def embedder():
    from knowledge_cache.ingest.embeddings import Embedder

    return Embedder(model_name="hashed-bow", backend="hashed", dim=256)


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."


@pytest.fixture(scope="session")
def long_text() -> str:
    """1,200 distinct whitespace tokens without sentence punctuation."""
    return " ".join(f"w{index}" for index in range(1200))
