"""Observability module for trackvault.

Provides structured logging and metrics:
- JSON structured logging with request correlation IDs
- Prometheus metrics for HTTP traffic and library mutations
"""

from trackvault.observability.logging import (
    LogContext,
    configure_logging,
    correlation_id_var,
    request_id_var,
)
from trackvault.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "correlation_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]
