"""Application configuration handling.

Values are layered: field defaults, then the YAML file, then ``KC_*``
environment variables. The YAML file groups keys into sections::

    storage:
      db_path: ~/.knowledge-cache/kc.db
    embeddings:
      backend: sentence-transformers
      model: sentence-transformers/all-MiniLM-L6-v2
    chunking:
      mode: token
      size: 500
      overlap: 50
    context:
      header: "..."
      instruction: "..."
    api:
      cors_origins: [http://localhost:5174]
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from knowledge_cache.ingest.chunker import validate_chunking
from knowledge_cache.ingest.embeddings import BACKENDS, DEFAULT_MAX_INPUT_CHARS, DEFAULT_MODEL

logger = logging.getLogger(__name__)

ENV_PREFIX = "KC_"
DEFAULT_CONFIG_PATH = Path("~/.config/knowledge-cache/config.yaml")
DEFAULT_CONTEXT_HEADER = "The following passages are relevant to the question:"
DEFAULT_CONTEXT_INSTRUCTION = "Answer using only the information in the passages above."
DEFAULT_CORS_ORIGINS = ("http://127.0.0.1:5174", "http://localhost:5174")

_SECTION_KEYS: Mapping[str, Mapping[str, str]] = {
    "storage": {"db_path": "db_path"},
    "embeddings": {
        "backend": "embedding_backend",
        "model": "embedding_model",
        "dim": "embedding_dim",
        "device": "embedding_device",
        "max_input_chars": "max_input_chars",
    },
    "chunking": {"mode": "chunk_mode", "size": "chunk_size", "overlap": "chunk_overlap"},
    "context": {"header": "context_header", "instruction": "context_instruction"},
    "api": {"cors_origins": "cors_origins"},
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".knowledge-cache" / "kc.db")
    embedding_backend: str = "sentence-transformers"
    embedding_model: str = DEFAULT_MODEL
    embedding_dim: int = Field(default=384, gt=0)
    embedding_device: str | None = None
    max_input_chars: int = Field(default=DEFAULT_MAX_INPUT_CHARS, gt=0)
    chunk_mode: str = "token"
    chunk_size: int = 500
    chunk_overlap: int = 50
    context_header: str = DEFAULT_CONTEXT_HEADER
    context_instruction: str = DEFAULT_CONTEXT_INSTRUCTION
    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("embedding_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in BACKENDS:
            raise ValueError(f"embedding_backend must be one of {', '.join(BACKENDS)}")
        return value

    @field_validator("embedding_device", mode="before")
    @classmethod
    def _blank_device_is_auto(cls, value: Any) -> Any:
        return value or None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        validate_chunking(self.chunk_mode, self.chunk_size, self.chunk_overlap)
        return self

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Build settings from defaults, the YAML file and the environment."""
        values: dict[str, Any] = {}
        config_path = resolve_config_path(path)
        if config_path is not None:
            values.update(read_config_file(config_path))
        values.update(env_overrides(os.environ))
        return cls(**values)


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Explicit path, then ``KC_CONFIG``, then the default location if it exists."""
    if path is not None:
        return path.expanduser()
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def read_config_file(path: Path) -> dict[str, Any]:
    """Map a sectioned YAML file onto Settings field names."""
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{path} must contain a mapping at the top level")

    values: dict[str, Any] = {}
    for section, entries in raw.items():
        keys = _SECTION_KEYS.get(section)
        if keys is not None and isinstance(entries, Mapping):
            for key, value in entries.items():
                if key in keys:
                    values[keys[key]] = value
                else:
                    logger.warning("Ignoring unknown config key %s.%s in %s", section, key, path)
        elif section in Settings.model_fields:
            values[section] = entries
        else:
            logger.warning("Ignoring unknown config section %s in %s", section, path)
    return values


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Pick ``KC_<FIELD>`` variables that name a Settings field."""
    overrides: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.load()


__all__ = [
    "DEFAULT_CONTEXT_HEADER",
    "DEFAULT_CONTEXT_INSTRUCTION",
    "Settings",
    "env_overrides",
    "get_settings",
    "read_config_file",
    "resolve_config_path",
]
