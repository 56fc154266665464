"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "kc_requests_total",
    "HTTP requests by route template, method and status",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "kc_request_latency_seconds",
    "HTTP request latency by route template",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "kc_ingest_duration_seconds",
    "Ingest pipeline duration",
    labelnames=("mode",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "kc_index_chunks",
    "Number of chunk embeddings stored",
    registry=REGISTRY,
)

EMBEDDING_FAILURES = Counter(
    "kc_embedding_failures_total",
    "Passages skipped because they could not be embedded",
    registry=REGISTRY,
)

DIMENSION_MISMATCHES = Counter(
    "kc_dimension_mismatches_total",
    "Candidates excluded from ranking because of a vector length mismatch",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGEST_DURATION",
    "INDEX_SIZE",
    "EMBEDDING_FAILURES",
    "DIMENSION_MISMATCHES",
    "metrics_response",
]
