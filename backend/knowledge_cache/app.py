"""FastAPI application setup for Knowledge Cache."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge_cache.api import dependencies as deps
from knowledge_cache.api.middleware import RequestMetricsMiddleware
from knowledge_cache.api.routes_admin import router as admin_router
from knowledge_cache.api.routes_ingest import router as ingest_router
from knowledge_cache.api.routes_query import router as query_router
from knowledge_cache.core.config import DEFAULT_CORS_ORIGINS, get_settings
from knowledge_cache.core.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Open storage and build the services; the embedding model loads on first use."""
    settings = deps.get_app_settings()
    deps.get_database()
    deps.get_ingest_pipeline()
    deps.get_query_service()
    logger.info("Knowledge Cache ready (db=%s, model=%s)", settings.db_path, deps.get_embedder().model_version)
    yield
    deps.reset_dependencies()


def create_app(cors_origins: list[str] | None = None) -> FastAPI:
    application = FastAPI(
        title="Knowledge Cache",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else list(DEFAULT_CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestMetricsMiddleware)
    application.include_router(ingest_router, tags=["ingest"])
    application.include_router(query_router, tags=["query"])
    application.include_router(admin_router, tags=["admin"])

    @application.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return application


configure_logging()
app = create_app(get_settings().cors_origins)
