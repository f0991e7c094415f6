"""Health check endpoints for trackvault.

Provides liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks the library document and blob directories)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from trackvault.api.deps import Library
from trackvault.core.errors import StorageFailure
from trackvault.library import LibraryManager

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_document(library: LibraryManager) -> ComponentHealth:
    """Check that the library document loads and parses."""
    start = time.monotonic()
    try:
        await library.documents.snapshot()
    except StorageFailure as e:
        return ComponentHealth(
            name="document",
            status=HealthStatus.UNHEALTHY,
            latency_ms=(time.monotonic() - start) * 1000,
            message=e.text,
        )
    return ComponentHealth(
        name="document",
        status=HealthStatus.HEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
    )


async def check_blobs(library: LibraryManager) -> ComponentHealth:
    """Check that the blob directories can be listed."""
    start = time.monotonic()
    try:
        await library.tracks.list_names()
        await library.images.list_names()
    except StorageFailure as e:
        return ComponentHealth(
            name="blobs",
            status=HealthStatus.UNHEALTHY,
            latency_ms=(time.monotonic() - start) * 1000,
            message=e.text,
        )
    return ComponentHealth(
        name="blobs",
        status=HealthStatus.HEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
    )


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(library: Library) -> JSONResponse:
    """Readiness probe.

    Returns 200 if the document and blob directories are usable, 503 otherwise.
    A corrupt library document makes the service unready.
    """
    components = [await check_document(library), await check_blobs(library)]
    healthy = all(c.status == HealthStatus.HEALTHY for c in components)
    overall = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY

    return JSONResponse(
        content={
            "status": overall.value,
            "components": [c.to_dict() for c in components],
        },
        status_code=200 if healthy else 503,
    )
