"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from knowledge_cache.core.config import Settings, env_overrides, read_config_file


def test_yaml_sections_map_to_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KC_EMBEDDING_BACKEND", raising=False)
    monkeypatch.delenv("KC_EMBEDDING_MODEL", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        "  db_path: ~/kc-test.db\n"
        "embeddings:\n"
        "  backend: hashed\n"
        "  dim: 128\n"
        "chunking:\n"
        "  mode: character\n"
        "  size: 800\n"
        "  overlap: 80\n"
        "context:\n"
        "  header: Passages\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("KC_CONFIG", str(config))
    monkeypatch.delenv("KC_DB_PATH", raising=False)

    settings = Settings.load()
    assert settings.db_path == Path("~/kc-test.db").expanduser()
    assert settings.embedding_backend == "hashed"
    assert settings.embedding_dim == 128
    assert (settings.chunk_mode, settings.chunk_size, settings.chunk_overlap) == ("character", 800, 80)
    assert settings.context_header == "Passages"


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("chunking:\n  size: 800\n", encoding="utf-8")
    monkeypatch.setenv("KC_CHUNK_SIZE", "300")
    monkeypatch.setenv("KC_CORS_ORIGINS", "http://a.test, http://b.test")

    settings = Settings.load(config)
    assert settings.chunk_size == 300
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("embeddings:\n  flavour: spicy\nmystery: 1\n", encoding="utf-8")
    assert read_config_file(config) == {}


def test_env_overrides_only_pick_known_fields() -> None:
    overrides = env_overrides({"KC_CHUNK_MODE": "page", "KC_HOST": "http://x", "OTHER": "1"})
    assert overrides == {"chunk_mode": "page"}


@pytest.mark.parametrize(
    "values",
    [
        {"embedding_backend": "word2vec"},
        {"chunk_size": 50, "chunk_overlap": 50},
        {"chunk_mode": "paragraph"},
    ],
)
def test_invalid_settings_are_rejected(values: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**values)
