"""Error responses for the trackvault HTTP API.

Every rejected request is answered with the same envelope:

    {"error": "Library item 'abc' not found", "code": "NotFound", "timestamp": "..."}

``code`` is one of Unauthorized, NotFound, InvalidInput, StorageFailure.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from trackvault.core.errors import ErrorKind, LibraryError

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Error envelope returned by every endpoint."""

    model_config = {"extra": "forbid"}

    error: str
    code: ErrorKind
    timestamp: str | None = None


def error_response(status_code: int, code: ErrorKind, text: str) -> ORJSONResponse:
    body = ErrorResponse(error=text, code=code, timestamp=datetime.now(UTC).isoformat())
    return ORJSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def library_exception_handler(request: Request, exc: LibraryError) -> ORJSONResponse:
    """Exception handler for library errors."""
    if exc.kind is ErrorKind.STORAGE_FAILURE:
        logger.error(f"Storage failure on {request.method} {request.url.path}", exc_info=exc)
        return error_response(exc.status_code, exc.kind, "Storage operation failed")
    return error_response(exc.status_code, exc.kind, exc.text)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Render malformed request bodies as InvalidInput."""
    errors = exc.errors()
    text = "Invalid data"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        text = f"Invalid data: {location} {errors[0].get('msg', '')}".strip()
    return error_response(400, ErrorKind.INVALID_INPUT, text)


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, ErrorKind.STORAGE_FAILURE, "An unexpected error occurred")
