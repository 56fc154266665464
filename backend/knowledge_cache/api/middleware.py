"""HTTP middleware."""

from __future__ import annotations

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from knowledge_cache.core.logging import get_logger
from knowledge_cache.core.metrics import REQUEST_COUNT, REQUEST_LATENCY

logger = get_logger(__name__)


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Count and time every request under its route template and final status."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.perf_counter() - start
            status_code = response.status_code if response is not None else 500
            route = request.scope.get("route")
            # Unmatched paths share one label.
            endpoint = getattr(route, "path", None) or "/__unknown__"
            REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(duration)
            REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(status_code)).inc()
            logger.debug(
                "%s %s -> %s in %.1f ms",
                request.method,
                endpoint,
                status_code,
                duration * 1000,
                extra={"ctx_endpoint": endpoint, "ctx_status": status_code},
            )


__all__ = ["RequestMetricsMiddleware"]
