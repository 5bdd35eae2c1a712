"""FastAPI application factory.

Creates the app with logging middleware, CORS, store error handlers,
lifespan wiring of the customer sync services, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from src.estateflow.config import StoreBackend, get_settings
from src.estateflow.core.redis import close_redis
from src.estateflow.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.estateflow.api.v1.router import router as v1_router
from src.estateflow.customers.clipboard import ClipboardService
from src.estateflow.customers.migration import LayoutMigrator
from src.estateflow.customers.photos import HttpBlobCleaner
from src.estateflow.customers.repository import CustomerRepository
from src.estateflow.customers.schemas import StorageLayout
from src.estateflow.customers.sync import SyncCoordinator
from src.estateflow.store import create_document_store
from src.estateflow.store.exceptions import DocumentNotFoundError, StoreError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the store and services on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()

    store = create_document_store(settings)
    repository = CustomerRepository(
        store,
        layout=StorageLayout(settings.STORAGE_LAYOUT),
        collection=settings.CUSTOMERS_COLLECTION,
    )

    # Photo cleanup is optional; without it deleted photos are left in blob storage
    blob_client: httpx.AsyncClient | None = None
    blob_cleaner = None
    if settings.PHOTO_CLEANUP_ENABLED:
        blob_client = httpx.AsyncClient(timeout=settings.PHOTO_CLEANUP_TIMEOUT)
        blob_cleaner = HttpBlobCleaner(blob_client)

    app.state.document_store = store
    app.state.customer_repository = repository
    app.state.sync_coordinator = SyncCoordinator(repository, blob_cleaner=blob_cleaner)
    app.state.clipboard_service = ClipboardService(store, collection=settings.SETTINGS_COLLECTION)
    app.state.layout_migrator = LayoutMigrator(repository)
    logger.info(
        "app.services_initialized",
        backend=settings.STORE_BACKEND.value,
        layout=repository.layout.value,
        photo_cleanup=blob_cleaner is not None,
    )

    yield

    await store.close()
    if blob_client is not None:
        await blob_client.aclose()
    if settings.STORE_BACKEND == StoreBackend.redis:
        await close_redis()
    logger.info("app.shutdown_complete")


async def _document_not_found_handler(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("app.store_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Document store unavailable"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Estate Flow API",
        version="0.1.0",
        description="Customer data sync and storage migration service",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(DocumentNotFoundError, _document_not_found_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(RedisError, _store_error_handler)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
