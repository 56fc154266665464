"""Chunking utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from knowledge_cache.core.errors import InvalidChunkConfig
from knowledge_cache.ingest.types import ChunkPayload, TextChunk

CHUNK_MODES = ("token", "character", "page")
PAGE_SIZE_ESTIMATE = 2500
PAGE_LOOKAHEAD_CHARS = 200
MIN_PAGE_CHARS = 100

_TERMINATORS = ".!?。！？"
_TOKEN_RE = re.compile(r"\S+")
_SENTENCE_RE = re.compile(rf"[^{_TERMINATORS}\n]*[{_TERMINATORS}]+|[^{_TERMINATORS}\n]+")
_SENTENCE_END_RE = re.compile(rf"[{_TERMINATORS}][\"'”’)\]]*$")
_SENTENCE_BREAK_RE = re.compile(rf"[{_TERMINATORS}](?=\s)")
_PAGE_END_RE = re.compile(rf"[{_TERMINATORS}]\s*$")
_PAGE_MARKER_RE = re.compile(
    r"\f"
    r"|^[ \t]*(?:={2,}[ \t]*page(?:[ \t]+\d+)?[ \t]*={2,}|page[ \t]+\d+|페이지[ \t]*\d+)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass(slots=True)
class Segment:
    start: int
    end: int
    units: int
    meta: dict[str, Any] = field(default_factory=dict)
    cover_start: int = 0
    cover_end: int = 0


def validate_chunking(mode: str, size: int, overlap: int) -> None:
    """Reject unusable chunking parameters before any work begins."""
    if mode not in CHUNK_MODES:
        raise InvalidChunkConfig(f"Unknown chunking mode: {mode!r}")
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise InvalidChunkConfig(f"size must be a positive integer, got {size!r}")
    if isinstance(overlap, bool) or not isinstance(overlap, int) or overlap < 0:
        raise InvalidChunkConfig(f"overlap must be a non-negative integer, got {overlap!r}")
    if overlap >= size:
        raise InvalidChunkConfig(f"overlap ({overlap}) must be smaller than size ({size})")


def chunk_text(
    text: str,
    mode: str = "token",
    size: int = 500,
    overlap: int = 50,
) -> list[TextChunk]:
    """Split text into ordered, bounded, overlapping chunks.

    ``token`` mode windows whitespace tokens and prefers to end on a sentence;
    ``character`` mode packs whole sentences up to ``size`` characters;
    ``page`` mode splits on page markers or, failing that, on fixed
    ``PAGE_SIZE_ESTIMATE`` character pages; ``size`` and ``overlap`` are
    validated but do not shape pages. Token and character chunks cover the whole text.
    """
    validate_chunking(mode, size, overlap)
    if not text.strip():
        return []

    if mode == "token":
        segments = _cover(text, _token_windows(text, size, overlap))
    elif mode == "character":
        segments = _cover(text, _sentence_windows(text, size, overlap))
    else:
        segments = _page_segments(text)
    return [_finalize_chunk(text, index, segment) for index, segment in enumerate(segments)]


def _token_windows(text: str, size: int, overlap: int) -> list[Segment]:
    tokens = [match.span() for match in _TOKEN_RE.finditer(text)]
    total = len(tokens)
    windows: list[Segment] = []
    start = 0
    while start < total:
        end = min(start + size, total)
        if end < total:
            floor = start + max(overlap + 1, size // 2)
            end = _prefer_sentence_end(text, tokens, end, floor)
        windows.append(
            Segment(
                start=tokens[start][0],
                end=tokens[end - 1][1],
                units=end - start,
                meta={"token_start": start, "token_end": end},
            )
        )
        if end >= total:
            break
        start = end - overlap
    return windows


def _prefer_sentence_end(text: str, tokens: Sequence[tuple[int, int]], end: int, floor: int) -> int:
    for candidate in range(end, floor - 1, -1):
        token_start, token_end = tokens[candidate - 1]
        if _SENTENCE_END_RE.search(text, token_start, token_end):
            return candidate
    return end


def _sentence_windows(text: str, size: int, overlap: int) -> list[Segment]:
    windows: list[Segment] = []
    current: Segment | None = None
    for start, end in _sentence_spans(text):
        if current is None:
            current = Segment(start=start, end=end, units=0, meta={"overlap_chars": 0})
            continue
        if end - current.start <= size:
            current.end = end
            continue
        windows.append(current)
        next_start = _overlap_start(text, current, overlap, fallback=start)
        current = Segment(
            start=next_start,
            end=end,
            units=0,
            meta={"overlap_chars": max(0, current.end - next_start)},
        )
    if current is not None:
        windows.append(current)
    for window in windows:
        window.units = window.end - window.start
    return windows


def _sentence_spans(text: str) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for match in _SENTENCE_RE.finditer(text):
        bounds = _trim(text, *match.span())
        if bounds is not None:
            spans.append(bounds)
    return spans


def _overlap_start(text: str, previous: Segment, overlap: int, fallback: int) -> int:
    if overlap <= 0:
        return fallback
    position = max(previous.start, previous.end - overlap)
    # Never start inside a word.
    if position > previous.start and not text[position - 1].isspace():
        while position < previous.end and not text[position].isspace():
            position += 1
    while position < previous.end and text[position].isspace():
        position += 1
    return position if position < previous.end else fallback


def _page_segments(text: str) -> list[Segment]:
    markers = list(_PAGE_MARKER_RE.finditer(text))
    if markers:
        detection = "marker"
        pages: list[tuple[int, int, int]] = []
        cursor = 0
        for marker in markers:
            pages.append((cursor, marker.start(), marker.end()))
            cursor = marker.end()
        pages.append((cursor, len(text), len(text)))
    else:
        detection = "estimate"
        pages = _estimate_pages(text)

    segments: list[Segment] = []
    for number, (cover_start, content_end, cover_end) in enumerate(pages, start=1):
        bounds = _trim(text, cover_start, content_end)
        if bounds is None or bounds[1] - bounds[0] < MIN_PAGE_CHARS:
            continue
        start, end = bounds
        segments.append(
            Segment(
                start=start,
                end=end,
                units=end - start,
                meta={"page_number": number, "total_pages": len(pages), "page_detection": detection},
                cover_start=cover_start,
                cover_end=cover_end,
            )
        )
    return segments


def _estimate_pages(text: str) -> list[tuple[int, int, int]]:
    length = len(text)
    pages: list[tuple[int, int, int]] = []
    cursor = 0
    while cursor < length:
        end = min(cursor + PAGE_SIZE_ESTIMATE, length)
        if end < length and not _PAGE_END_RE.search(text, cursor, end):
            match = _SENTENCE_BREAK_RE.search(text, end, min(length, end + PAGE_LOOKAHEAD_CHARS + 1))
            if match:
                end = match.end()
        pages.append((cursor, end, end))
        cursor = end
    return pages


def _cover(text: str, segments: list[Segment]) -> list[Segment]:
    """Stretch covered ranges so consecutive chunks leave no gaps."""
    for index, segment in enumerate(segments):
        segment.cover_start = 0 if index == 0 else segment.start
        if index + 1 < len(segments):
            segment.cover_end = max(segment.end, segments[index + 1].start)
        else:
            segment.cover_end = len(text)
    return segments


def _trim(text: str, start: int, end: int) -> tuple[int, int] | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def _finalize_chunk(text: str, index: int, segment: Segment) -> TextChunk:
    return TextChunk(
        chunk_index=index,
        text=text[segment.start : segment.end],
        start_offset=segment.cover_start,
        end_offset=segment.cover_end,
        unit_count=segment.units,
        metadata=dict(segment.meta),
    )


def build_chunk_payloads(document_id: int, chunks: Iterable[TextChunk]) -> list[ChunkPayload]:
    """Attach the owning document to raw chunks, re-numbering them densely."""
    payloads = []
    for ordinal, chunk in enumerate(chunks):
        payloads.append(
            ChunkPayload(
                document_id=document_id,
                chunk_index=ordinal,
                text=chunk.text,
                start_offset=chunk.start_offset,
                end_offset=chunk.end_offset,
                unit_count=chunk.unit_count,
                metadata=dict(chunk.metadata),
            )
        )
    return payloads


__all__ = [
    "CHUNK_MODES",
    "PAGE_SIZE_ESTIMATE",
    "MIN_PAGE_CHARS",
    "chunk_text",
    "validate_chunking",
    "build_chunk_payloads",
]
