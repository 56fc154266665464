"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
# Letters of any script, digits and basic punctuation survive.
DISALLOWED_RE = re.compile(r"[^\w\s.,!?;:'\"()\-]|_")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def clean_for_embedding(text: str, max_chars: int) -> str:
    """Normalize text and drop characters outside the allow-list, then truncate."""
    cleaned = normalize(DISALLOWED_RE.sub("", text))
    return cleaned[:max_chars].rstrip()
