"""Library document store.

All records live in one JSON array on disk. Mutations are serialized by
an asyncio.Lock held for the whole read-modify-write cycle and committed
by writing a temporary file next to the document and renaming it over
the original. Readers never take the lock; they always see the last
fully committed document.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]
import orjson
from pydantic import ValidationError

from trackvault.core.errors import InvalidInput, NotFound, StorageFailure
from trackvault.core.model import LibraryRecord
from trackvault.observability.metrics import record_document_corruption

logger = logging.getLogger(__name__)

Records = list[LibraryRecord]
CorruptionHook = Callable[[Path, StorageFailure], None]

RECORD_RESOURCE = "Library item"


class DocumentCorrupt(StorageFailure):
    """The library document exists but cannot be parsed."""


def merge_fields(record: LibraryRecord, fields: dict[str, Any]) -> LibraryRecord:
    """Apply a partial update to a record.

    Keys use the wire aliases. ``None`` removes the field, ``style`` is
    merged key by key instead of replaced.
    """
    if "id" in fields:
        raise InvalidInput("Record id cannot be changed")

    doc = record.to_document()
    for key, value in fields.items():
        if value is None:
            doc.pop(key, None)
        elif key == "style" and isinstance(value, dict):
            doc["style"] = {**doc.get("style", {}), **value}
        else:
            doc[key] = value

    try:
        return LibraryRecord.model_validate(doc)
    except ValidationError as exc:
        raise InvalidInput(f"Invalid record fields: {exc.errors()[0]['msg']}") from exc


class DocumentStore:
    """Persistent collection of library records."""

    def __init__(self, path: str | Path, *, on_corrupt: CorruptionHook | None = None):
        """Initialize the document store.

        Args:
            path: Location of the JSON document
            on_corrupt: Called when a read finds an unparseable document
        """
        self.path = Path(path)
        self.on_corrupt = on_corrupt
        self._lock = asyncio.Lock()

    async def _load(self) -> Records:
        try:
            async with aiofiles.open(self.path, "rb") as f:
                raw = await f.read()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageFailure(f"Cannot read library document {self.path}") from exc

        if not raw.strip():
            return []

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise DocumentCorrupt(f"Library document {self.path} is not valid JSON") from exc

        if not isinstance(data, list):
            raise DocumentCorrupt(f"Library document {self.path} is not a JSON array")

        try:
            return [LibraryRecord.model_validate(item) for item in data]
        except ValidationError as exc:
            raise DocumentCorrupt(f"Library document {self.path} has invalid records") from exc

    async def _write(self, records: Records) -> None:
        payload = orjson.dumps(
            [record.to_document() for record in records],
            option=orjson.OPT_INDENT_2,
        )
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(payload)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as exc:
            await self._discard(tmp_path)
            raise StorageFailure(f"Cannot write library document {self.path}") from exc
        except BaseException:
            await self._discard(tmp_path)
            raise

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except OSError:
            pass

    def _report_corruption(self, exc: StorageFailure) -> None:
        logger.error(
            f"Library document unreadable, serving an empty library: {exc}",
            extra={"document": str(self.path)},
        )
        record_document_corruption()
        if self.on_corrupt is not None:
            self.on_corrupt(self.path, exc)

    async def list_records(self) -> Records:
        """Return the committed collection.

        Never raises: an unreadable document reads as an empty library and
        is reported through the corruption hook.
        """
        try:
            return await self._load()
        except StorageFailure as exc:
            self._report_corruption(exc)
            return []

    async def get(self, record_id: str) -> LibraryRecord:
        for record in await self._load():
            if record.id == record_id:
                return record
        raise NotFound(RECORD_RESOURCE, record_id)

    async def snapshot(self) -> Records:
        """Load the committed collection, raising StorageFailure if unreadable."""
        return await self._load()

    async def mutate(self, fn: Callable[[Records], Records]) -> Records:
        """Apply ``fn`` to the collection and commit the result atomically.

        Concurrent calls are serialized. If ``fn`` raises, nothing is
        written. A corrupt document is never overwritten: the mutation
        fails with StorageFailure instead.
        """
        async with self._lock:
            records = await self._load()
            updated = fn(list(records))
            await self._write(updated)
            return updated

    async def insert(self, record: LibraryRecord) -> LibraryRecord:
        def apply(records: Records) -> Records:
            if any(existing.id == record.id for existing in records):
                raise InvalidInput(f"{RECORD_RESOURCE} '{record.id}' already exists")
            records.append(record)
            return records

        await self.mutate(apply)
        return record

    async def update_fields(self, record_id: str, fields: dict[str, Any]) -> LibraryRecord:
        """Change only the supplied fields of one record."""
        result: list[LibraryRecord] = []

        def apply(records: Records) -> Records:
            for index, existing in enumerate(records):
                if existing.id == record_id:
                    records[index] = merge_fields(existing, fields)
                    result.append(records[index])
                    return records
            raise NotFound(RECORD_RESOURCE, record_id)

        await self.mutate(apply)
        return result[0]

    async def remove(self, record_id: str) -> LibraryRecord:
        """Remove one record and return it."""
        result: list[LibraryRecord] = []

        def apply(records: Records) -> Records:
            for index, existing in enumerate(records):
                if existing.id == record_id:
                    result.append(records.pop(index))
                    return records
            raise NotFound(RECORD_RESOURCE, record_id)

        await self.mutate(apply)
        return result[0]
