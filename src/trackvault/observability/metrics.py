"""Prometheus metrics for trackvault.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Library metrics (mutations, blob rollbacks, document corruption)

Usage:
    from trackvault.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.library_mutations_total.labels(operation="create").inc()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from trackvault.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Library metrics
    library_mutations_total: Any = None
    blob_rollbacks_total: Any = None
    document_corruptions_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = CollectorRegistry()

        self.http_requests_total = Counter(
            "trackvault_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self._registry,
        )

        self.http_request_duration_seconds = Histogram(
            "trackvault_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=self._registry,
        )

        self.library_mutations_total = Counter(
            "trackvault_library_mutations_total",
            "Committed library mutations",
            ["operation"],
            registry=self._registry,
        )

        self.blob_rollbacks_total = Counter(
            "trackvault_blob_rollbacks_total",
            "Staged blobs deleted after a failed commit",
            ["blob_type"],
            registry=self._registry,
        )

        self.document_corruptions_total = Counter(
            "trackvault_document_corruptions_total",
            "Library document reads that failed to parse",
            registry=self._registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics.

    Records:
    - Request count by method, path, status
    - Request duration histogram
    """

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Record metrics for HTTP requests."""
        if request.url.path in ("/health/live", "/health/ready", "/metrics"):
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)

        start_time = time.perf_counter()
        status_code = 500  # Default in case of exception

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time

            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method,
                    path=path,
                    status=status_code,
                ).inc()

            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    path=path,
                ).observe(duration)

    def _normalize_path(self, path: str) -> str:
        """Normalize path by replacing blob filenames with placeholders.

        Examples:
            /gpx/1700000000000_ab12cd34_trail.gpx -> /gpx/{filename}
            /gpx/images/abc-1700000000000.png -> /gpx/images/{filename}
        """
        parts = path.strip("/").split("/")
        if parts and parts[0] == "gpx":
            if len(parts) >= 3 and parts[1] == "images":
                return "/gpx/images/{filename}"
            if len(parts) >= 2:
                return "/gpx/{filename}"
        return path


def record_mutation(operation: str) -> None:
    """Record a committed library mutation.

    Args:
        operation: create, overwrite, update, delete, attach_image, detach_image, prune
    """
    metrics = get_metrics()
    if metrics.library_mutations_total:
        metrics.library_mutations_total.labels(operation=operation).inc()


def record_blob_rollback(blob_type: str) -> None:
    """Record deletion of a staged blob after a failed commit."""
    metrics = get_metrics()
    if metrics.blob_rollbacks_total:
        metrics.blob_rollbacks_total.labels(blob_type=blob_type).inc()


def record_document_corruption() -> None:
    """Record a library document that could not be parsed."""
    metrics = get_metrics()
    if metrics.document_corruptions_total:
        metrics.document_corruptions_total.inc()
