"""Error taxonomy for the library store.

Every rejected operation raises a LibraryError subclass whose ``kind``
tells the four failure classes apart:

- Unauthorized: missing or wrong credential on a write path
- NotFound: unknown record id or blob name
- InvalidInput: missing field, bad enum value, disallowed or oversized image
- StorageFailure: the document or blob layer failed underneath us
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminator carried by every LibraryError."""

    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    INVALID_INPUT = "InvalidInput"
    STORAGE_FAILURE = "StorageFailure"


class LibraryError(Exception):
    """Base exception for library store errors."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE
    status_code: int = 500

    def __init__(self, text: str):
        self.text = text
        super().__init__(text)


class Unauthorized(LibraryError):
    """Credential does not grant the required access level (401)."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 401

    def __init__(self, text: str = "Unauthorized"):
        super().__init__(text)


class NotFound(LibraryError):
    """Record or blob not found (404)."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource_type: str, identifier: str):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} '{identifier}' not found")


class InvalidInput(LibraryError):
    """Request data rejected before any side effect (400)."""

    kind = ErrorKind.INVALID_INPUT
    status_code = 400


class StorageFailure(LibraryError):
    """Underlying file-system error on the document or blob layer (500)."""

    kind = ErrorKind.STORAGE_FAILURE
    status_code = 500
