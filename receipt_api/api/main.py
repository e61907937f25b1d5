"""Entry point for the FastAPI application.

This module constructs the FastAPI app, includes all routers and
sets up the lifespan handler. When run with uvicorn it initialises the
database and loads configuration from ``receipt_api.core.config``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from receipt_api.api.dependencies import require_api_key
from receipt_api.api.error_handlers import (
    app_error_handler,
    database_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from receipt_api.api.routes.files import router as files_router
from receipt_api.api.routes.health import router as health_router
from receipt_api.api.routes.receipts import router as receipts_router
from receipt_api.core.config import settings, storage_root
from receipt_api.core.database import get_db_debug_info, init_db
from receipt_api.core.errors import AppError
from receipt_api.core.observability import init_sentry, sentry_set_tags
from receipt_api.models.enums import StorageBackend

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Startup
    logger.info("Starting up...")
    if init_sentry("api"):
        logger.info("Sentry SDK initialized (api)")
    await init_db()
    logger.info("Database ready: %s", get_db_debug_info()["url"])
    yield
    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    docs_url="/api-docs",
    lifespan=lifespan,
)


# Middleware to enrich Sentry scope with lightweight request info
@app.middleware("http")
async def sentry_context_middleware(request: Request, call_next):  # type: ignore
    sentry_set_tags({"path": request.url.path, "method": request.method})
    response = await call_next(request)
    return response


# CORS: allow everything in development, configured origins otherwise
allow_origins = ["*"] if settings.is_development else list(settings.BACKEND_CORS_ORIGINS or [])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials="*" not in allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include routers
api_dependencies = [Depends(require_api_key)]
app.include_router(receipts_router, prefix=settings.API_PREFIX, dependencies=api_dependencies)
app.include_router(files_router, prefix=settings.API_PREFIX, dependencies=api_dependencies)
app.include_router(health_router)

# Stored PDFs are served read-only when kept on local disk
if (settings.STORAGE_BACKEND or "filesystem").lower() == StorageBackend.FILESYSTEM.value:
    app.mount("/uploads", StaticFiles(directory=str(storage_root()), check_dir=False), name="uploads")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "PDF Receipt Extraction API",
        "version": settings.VERSION,
        "docs": "/api-docs",
    }
