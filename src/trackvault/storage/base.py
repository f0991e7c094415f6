"""Base blob storage interface.

Defines the abstract interface for blob storage backends. Blobs are
addressed by generated filenames; content is immutable until replaced
through overwrite().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import BinaryIO

NameFactory = Callable[[str], str]


class BlobStore(ABC):
    """Abstract base class for blob storage backends."""

    @abstractmethod
    async def store(
        self,
        content: bytes | BinaryIO,
        suggested_name: str,
        *,
        name_factory: NameFactory | None = None,
    ) -> str:
        """Store a new blob and return its generated filename.

        Args:
            content: Binary content or file-like object
            suggested_name: Original name supplied by the uploader
            name_factory: Overrides the backend's filename generator

        Returns:
            The generated filename. An existing blob is never replaced.
        """
        ...

    @abstractmethod
    async def overwrite(self, filename: str, content: bytes | BinaryIO) -> None:
        """Replace the content of an existing blob in place.

        Raises:
            NotFound: If the blob does not exist
        """
        ...

    @abstractmethod
    async def read(self, filename: str) -> bytes:
        """Read the full content of a blob.

        Raises:
            NotFound: If the blob does not exist
        """
        ...

    @abstractmethod
    def stream(self, filename: str) -> AsyncIterator[bytes]:
        """Stream blob content in chunks.

        Raises:
            NotFound: If the blob does not exist
        """
        ...

    @abstractmethod
    async def delete(self, filename: str) -> bool:
        """Delete a blob.

        Returns:
            True if deleted, False if it was already absent
        """
        ...

    @abstractmethod
    async def exists(self, filename: str) -> bool:
        """Check if a blob exists."""
        ...

    @abstractmethod
    async def modified_at(self, filename: str) -> float:
        """Return the blob's modification time as a POSIX timestamp.

        Raises:
            NotFound: If the blob does not exist
        """
        ...

    @abstractmethod
    async def list_names(self) -> list[str]:
        """List every blob filename currently stored."""
        ...

    @staticmethod
    def as_bytes(content: bytes | BinaryIO) -> bytes:
        if isinstance(content, bytes):
            return content
        return content.read()
