"""Local filesystem blob storage.

Stores blobs as plain files in a single directory:
    {base_path}/{filename}

New blobs are created exclusively so an existing file is never replaced.
Overwrites go through a temporary file in the same directory followed by
an atomic rename, so readers see either the old or the new content.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import BinaryIO, cast
from uuid import uuid4

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from trackvault.core.errors import NotFound, StorageFailure
from trackvault.core.names import track_blob_name, validate_blob_name
from trackvault.storage.base import BlobStore, NameFactory

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class LocalBlobStore(BlobStore):
    """Local filesystem blob storage backend."""

    CHUNK_SIZE = 64 * 1024  # 64KB chunks for streaming
    MAX_NAME_ATTEMPTS = 5

    def __init__(
        self,
        base_path: str | Path,
        *,
        blob_type: str = "track",
        name_factory: NameFactory = track_blob_name,
        reserved: Iterable[str] = (),
    ):
        """Initialize local blob storage.

        Args:
            base_path: Directory holding the blobs
            blob_type: Label used in logs and metrics ("track", "image")
            name_factory: Generates a filename from the uploader's name
            reserved: Names in the directory that are not blobs (e.g. the
                library document)
        """
        self.base_path = Path(base_path)
        self.blob_type = blob_type
        self.name_factory = name_factory
        self.reserved = frozenset(reserved)

    async def _ensure_directory(self) -> None:
        """Ensure the blob directory exists."""
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Cannot create blob directory {self.base_path}") from exc

    def _path(self, filename: str) -> Path:
        if self._is_reserved(validate_blob_name(filename)):
            raise NotFound("Blob", filename)
        return self.base_path / filename

    def _is_reserved(self, name: str) -> bool:
        return name in self.reserved

    async def store(
        self,
        content: bytes | BinaryIO,
        suggested_name: str,
        *,
        name_factory: NameFactory | None = None,
    ) -> str:
        """Store a blob under a freshly generated filename."""
        factory = name_factory or self.name_factory
        content_bytes = self.as_bytes(content)
        await self._ensure_directory()

        for _ in range(self.MAX_NAME_ATTEMPTS):
            filename = factory(suggested_name)
            blob_path = self._path(filename)
            try:
                async with aiofiles.open(blob_path, "xb") as f:
                    await f.write(content_bytes)
            except FileExistsError:
                # Generated names embed a millisecond timestamp
                await asyncio.sleep(0.002)
                continue
            except OSError as exc:
                await self._discard(blob_path)
                raise StorageFailure(f"Failed to write {self.blob_type} blob") from exc
            except BaseException:
                await self._discard(blob_path)
                raise

            logger.debug(
                f"Stored {self.blob_type} blob {filename} ({len(content_bytes)} bytes)"
            )
            return filename

        raise StorageFailure(f"Could not allocate a unique name for '{suggested_name}'")

    async def overwrite(self, filename: str, content: bytes | BinaryIO) -> None:
        """Atomically replace an existing blob."""
        blob_path = self._path(filename)
        if not await aiofiles.os.path.isfile(blob_path):
            raise NotFound("Blob", filename)

        content_bytes = self.as_bytes(content)
        tmp_path = blob_path.with_name(f".{filename}.{uuid4().hex}{TEMP_SUFFIX}")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(content_bytes)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp_path, blob_path)
        except OSError as exc:
            await self._discard(tmp_path)
            raise StorageFailure(f"Failed to overwrite {self.blob_type} blob {filename}") from exc
        except BaseException:
            await self._discard(tmp_path)
            raise

        logger.debug(f"Overwrote {self.blob_type} blob {filename} ({len(content_bytes)} bytes)")

    async def read(self, filename: str) -> bytes:
        """Read blob content from the local filesystem."""
        blob_path = self._path(filename)
        try:
            async with aiofiles.open(blob_path, "rb") as f:
                content = await f.read()
        except FileNotFoundError:
            raise NotFound("Blob", filename)
        except OSError as exc:
            raise StorageFailure(f"Failed to read {self.blob_type} blob {filename}") from exc

        return cast(bytes, content)

    async def stream(self, filename: str) -> AsyncIterator[bytes]:
        """Stream blob content in chunks."""
        blob_path = self._path(filename)

        if not await aiofiles.os.path.isfile(blob_path):
            raise NotFound("Blob", filename)

        async with aiofiles.open(blob_path, "rb") as f:
            while True:
                chunk = await f.read(self.CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def delete(self, filename: str) -> bool:
        """Delete a blob; a missing blob is not an error."""
        blob_path = self._path(filename)
        try:
            await aiofiles.os.remove(blob_path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageFailure(f"Failed to delete {self.blob_type} blob {filename}") from exc

        logger.debug(f"Deleted {self.blob_type} blob {filename}")
        return True

    async def exists(self, filename: str) -> bool:
        """Check if a blob exists in the local filesystem."""
        if self._is_reserved(validate_blob_name(filename)):
            return False
        return cast(bool, await aiofiles.os.path.isfile(self.base_path / filename))

    async def modified_at(self, filename: str) -> float:
        """Return the blob's modification time as a POSIX timestamp."""
        try:
            return cast(float, await aiofiles.os.path.getmtime(self._path(filename)))
        except FileNotFoundError:
            raise NotFound("Blob", filename)

    async def list_names(self) -> list[str]:
        """List blob files, skipping subdirectories and reserved names."""
        if not await aiofiles.os.path.isdir(self.base_path):
            return []
        try:
            entries = await aiofiles.os.listdir(self.base_path)
        except OSError as exc:
            raise StorageFailure(f"Cannot list blob directory {self.base_path}") from exc

        names = []
        for name in sorted(entries):
            if self._is_reserved(name):
                continue
            if await aiofiles.os.path.isfile(self.base_path / name):
                names.append(name)
        return names

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning(f"Could not remove partial {self.blob_type} file {path}")
