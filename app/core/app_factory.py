"""Application factory helpers to keep app/main.py lightweight."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api.router import api_router
from app.api.websocket import router as websocket_router
from app.core.config import settings
from app.core.error_handlers import register_exception_handlers
from app.core.logging_config import setup_logging
from app.core.middleware import LoggingMiddleware
from app.core.store import DocumentStore, get_store

logger = logging.getLogger(__name__)


def _configure_app(app: FastAPI) -> None:
    # Logs all requests and responses with timing
    app.add_middleware(LoggingMiddleware)

    origins = settings.cors_allowlist or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(websocket_router)


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", tags=["Health"])
    def health(store: DocumentStore = Depends(get_store)):
        return {
            "status": "ok",
            "environment": settings.environment,
            "store": store.backend_name,
        }


def _lifespan_factory():
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = get_store()
        logger.info(f"Document store ready ({store.backend_name})")
        yield

    return lifespan


def create_app() -> FastAPI:
    """
    Application Factory to create and configure the FastAPI application.
    Integrates logging, error handling, middleware and the document store.
    """
    setup_logging(
        log_level=getattr(settings, "log_level", "INFO"),
        log_dir=getattr(settings, "log_dir", None),
        app_name="collaboration_service",
        max_bytes=10 * 1024 * 1024,  # 10 MB
        backup_count=5,
        use_json=getattr(settings, "use_json_logs", False),
        use_colors=True,
    )

    app = FastAPI(
        title=settings.SITE_NAME,
        description="Lifecycle and membership workflows for musician collaborations",
        version="1.0.0",
        lifespan=_lifespan_factory(),
        default_response_class=ORJSONResponse,
    )

    app.state.environment = settings.environment

    _configure_app(app)
    _register_routes(app)
    register_exception_handlers(app)

    logger.info("Application startup complete")
    return app


__all__ = ["create_app"]
