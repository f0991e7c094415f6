"""FastAPI application factory for trackvault.

Creates the application with:
- Library endpoints (/library, /library/image, /library/save)
- Blob downloads (/gpx/{filename}, /gpx/images/{filename})
- Health probes and Prometheus metrics
- Password-based read/write access control
- Consistent JSON error envelopes
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from trackvault.api.errors import (
    generic_exception_handler,
    library_exception_handler,
    validation_exception_handler,
)
from trackvault.api.middleware import CorrelationMiddleware
from trackvault.api.routers import blobs, health, library
from trackvault.api.routers import metrics as metrics_router
from trackvault.config import Settings
from trackvault.config import settings as default_settings
from trackvault.core.errors import LibraryError
from trackvault.library import LibraryManager
from trackvault.observability import configure_logging
from trackvault.observability.metrics import MetricsMiddleware, get_metrics
from trackvault.security import AccessGate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Report the library layout and access mode
    """
    settings: Settings = app.state.settings

    # JSON in production, console in dev
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    gate: AccessGate = app.state.gate
    logger.info(f"Starting trackvault ({settings.env}) with library at {settings.library_dir}")
    if not gate.protected:
        logger.warning("No access passwords configured; the library is open for writing")

    yield

    logger.info("trackvault shutdown complete")


def create_app(
    settings: Settings | None = None,
    library_manager: LibraryManager | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration to use instead of the environment-derived default
        library_manager: Prebuilt manager; built from settings when omitted
    """
    settings = settings or default_settings

    app = FastAPI(
        title="trackvault",
        description="GPS track library with images and metadata",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.library = library_manager or LibraryManager.from_settings(settings)
    app.state.gate = AccessGate(settings.read_password, settings.write_password)

    # CorrelationMiddleware is innermost so metrics and handlers see the request context
    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(LibraryError, cast(ExceptionHandler, library_exception_handler))
    app.add_exception_handler(
        RequestValidationError, cast(ExceptionHandler, validation_exception_handler)
    )
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(library.router)
    app.include_router(blobs.router)

    return app
