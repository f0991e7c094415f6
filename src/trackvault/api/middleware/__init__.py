"""Middleware for the trackvault API.

- Correlation context for request tracing
"""

from trackvault.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
