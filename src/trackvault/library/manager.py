"""Library asset manager.

Sequences blob writes with document commits so a failure at any step
leaves neither an orphaned blob nor a record pointing at a missing one:

- new blobs are written first and deleted again if the commit fails
- blobs that lose their last reference are deleted after the commit
- operations that touch an existing record's blobs (overwrite, image
  swap, delete) are serialized so they cannot interleave

Every operation takes the caller's AccessLevel explicitly and checks it
before any I/O happens.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import Any, TypeVar

from pydantic import ValidationError

from trackvault.config import Settings
from trackvault.core.errors import InvalidInput, NotFound, StorageFailure
from trackvault.core.model import LibraryRecord, RecordPatch
from trackvault.core.names import (
    IMAGE_EXTENSIONS,
    image_blob_name,
    image_extension,
    new_record_id,
    normalize_webpage,
    now_iso,
)
from trackvault.observability.metrics import record_blob_rollback, record_mutation
from trackvault.security.gate import AccessLevel, require_read, require_write
from trackvault.storage.base import BlobStore
from trackvault.storage.document import RECORD_RESOURCE, CorruptionHook, DocumentStore, Records
from trackvault.storage.local import LocalBlobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_IMAGE_TYPES = frozenset(IMAGE_EXTENSIONS)
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024

SAVE_MODE_NEW = "new"
SAVE_MODE_OVERWRITE = "overwrite"

# Orphans younger than this may belong to an upload that has not committed yet
DEFAULT_PRUNE_GRACE_SECONDS = 300.0


@dataclass
class IntegrityReport:
    """Result of comparing the document with the blob directories."""

    records: int = 0
    missing_tracks: list[tuple[str, str]] = field(default_factory=list)
    missing_images: list[tuple[str, str]] = field(default_factory=list)
    orphan_tracks: list[str] = field(default_factory=list)
    orphan_images: list[str] = field(default_factory=list)
    pruned_tracks: list[str] = field(default_factory=list)
    pruned_images: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.missing_tracks or self.missing_images or self.orphan_tracks or self.orphan_images
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "records": self.records,
            "missingTracks": [{"id": i, "filename": f} for i, f in self.missing_tracks],
            "missingImages": [{"id": i, "image": f} for i, f in self.missing_images],
            "orphanTracks": self.orphan_tracks,
            "orphanImages": self.orphan_images,
            "prunedTracks": self.pruned_tracks,
            "prunedImages": self.pruned_images,
        }


def _log_detached_outcome(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        logger.warning("Library operation cancelled after its caller went away")
    elif task.exception() is not None:
        logger.error(
            "Library operation failed after its caller went away",
            exc_info=task.exception(),
        )


class LibraryManager:
    """Create, update and delete library records together with their blobs."""

    def __init__(
        self,
        documents: DocumentStore,
        tracks: BlobStore,
        images: BlobStore,
        *,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    ):
        self.documents = documents
        self.tracks = tracks
        self.images = images
        self.max_image_bytes = max_image_bytes
        self._lifecycle_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, *, on_corrupt: CorruptionHook | None = None
    ) -> "LibraryManager":
        """Build a manager for the directory layout described by settings."""
        return cls(
            documents=DocumentStore(settings.document_path, on_corrupt=on_corrupt),
            tracks=LocalBlobStore(
                settings.library_dir,
                blob_type="track",
                reserved={settings.document_name},
            ),
            images=LocalBlobStore(settings.images_dir, blob_type="image"),
            max_image_bytes=settings.max_image_bytes,
        )

    async def _run_detached(self, operation: Awaitable[T]) -> T:
        """Run an operation to completion even if the caller is cancelled.

        Blob staging and the document commit must not be split by a
        cancelled request; the caller still sees the CancelledError.
        """
        task = asyncio.ensure_future(operation)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                task.add_done_callback(_log_detached_outcome)
            raise

    async def _rollback(self, store: BlobStore, filename: str) -> None:
        blob_type = getattr(store, "blob_type", "blob")
        try:
            await store.delete(filename)
        except StorageFailure:
            logger.exception(f"Rollback could not delete staged {blob_type} blob {filename}")
            return
        record_blob_rollback(blob_type)
        logger.warning(f"Rolled back staged {blob_type} blob {filename}")

    async def _release(self, store: BlobStore, filename: str | None) -> None:
        """Delete a blob whose last reference was just committed away."""
        if not filename:
            return
        try:
            await store.delete(filename)
        except StorageFailure:
            # The commit stands; verify --prune reclaims the file later
            logger.exception(f"Could not delete unreferenced blob {filename}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_records(self, access: AccessLevel) -> Records:
        require_read(access)
        return await self.documents.list_records()

    async def get_record(self, access: AccessLevel, record_id: str) -> LibraryRecord:
        require_read(access)
        return await self.documents.get(record_id)

    async def open_track(self, access: AccessLevel, filename: str) -> AsyncIterator[bytes]:
        require_read(access)
        return await self._open_blob(self.tracks, filename)

    async def open_image(self, access: AccessLevel, filename: str) -> AsyncIterator[bytes]:
        require_read(access)
        return await self._open_blob(self.images, filename)

    async def _open_blob(self, store: BlobStore, filename: str) -> AsyncIterator[bytes]:
        if not await store.exists(filename):
            raise NotFound("Blob", filename)
        return store.stream(filename)

    # ------------------------------------------------------------------
    # Record lifecycle
    # ------------------------------------------------------------------

    async def create_record(
        self,
        access: AccessLevel,
        content: bytes,
        name: str,
        tags: Iterable[str] = (),
    ) -> LibraryRecord:
        """Store an uploaded track and insert a record referencing it."""
        require_write(access)
        if not name:
            raise InvalidInput("No file provided")
        return await self._run_detached(self._create(content, name, list(tags)))

    async def _create(self, content: bytes, name: str, tags: list[str]) -> LibraryRecord:
        filename = await self.tracks.store(content, name)
        record = LibraryRecord(
            id=new_record_id(),
            name=name,
            filename=filename,
            tags=tags,
            date=now_iso(),
        )
        try:
            await self.documents.insert(record)
        except BaseException:
            await self._rollback(self.tracks, filename)
            raise

        record_mutation("create")
        logger.info(f"Created library record {record.id}", extra={"record_id": record.id})
        return record

    async def save_content(
        self,
        access: AccessLevel,
        content: str | bytes | None,
        filename: str | None,
        item_id: str | None = None,
        mode: str | None = None,
    ) -> tuple[str, LibraryRecord]:
        """Save edited track content, either as a new record or over an existing one.

        Returns:
            The applied mode ("new" or "overwrite") and the resulting record
        """
        require_write(access)
        if not content or not filename:
            raise InvalidInput("Missing content or filename")

        data = content.encode("utf-8") if isinstance(content, str) else content

        if mode == SAVE_MODE_OVERWRITE and item_id:
            record = await self._run_detached(self._overwrite(item_id, data))
            return SAVE_MODE_OVERWRITE, record

        record = await self._run_detached(self._create(data, filename, []))
        return SAVE_MODE_NEW, record

    async def _overwrite(self, item_id: str, data: bytes) -> LibraryRecord:
        async with self._lifecycle_lock:
            record = await self.documents.get(item_id)
            await self.tracks.overwrite(record.filename, data)
            updated = await self.documents.update_fields(item_id, {"date": now_iso()})

        record_mutation("overwrite")
        logger.info(f"Overwrote content of library record {item_id}", extra={"record_id": item_id})
        return updated

    async def update_record(
        self,
        access: AccessLevel,
        record_id: str,
        patch: RecordPatch | dict[str, Any],
    ) -> LibraryRecord:
        """Apply a partial update of user-editable fields."""
        require_write(access)
        if not record_id:
            raise InvalidInput("Invalid data")

        if not isinstance(patch, RecordPatch):
            try:
                patch = RecordPatch.model_validate(patch)
            except ValidationError as exc:
                error = exc.errors()[0]
                location = ".".join(str(part) for part in error["loc"])
                raise InvalidInput(f"Invalid value for {location}: {error['msg']}") from exc

        fields = patch.to_fields()
        if "raceWebpage" in fields:
            fields["raceWebpage"] = normalize_webpage(fields["raceWebpage"])

        record = await self.documents.update_fields(record_id, fields)
        record_mutation("update")
        return record

    async def delete_record(self, access: AccessLevel, record_id: str) -> LibraryRecord:
        """Remove a record, then its track and image blobs."""
        require_write(access)
        if not record_id:
            raise InvalidInput("Invalid data")
        return await self._run_detached(self._delete(record_id))

    async def _delete(self, record_id: str) -> LibraryRecord:
        async with self._lifecycle_lock:
            removed = await self.documents.remove(record_id)
            await self._release(self.tracks, removed.filename)
            await self._release(self.images, removed.image)

        record_mutation("delete")
        logger.info(f"Deleted library record {record_id}", extra={"record_id": record_id})
        return removed

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def validate_image(self, content: bytes, content_type: str | None) -> None:
        """Reject disallowed image types and oversized uploads."""
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise InvalidInput("Invalid file type. Use JPEG, PNG, GIF, or WebP.")
        if len(content) > self.max_image_bytes:
            limit_mb = self.max_image_bytes // (1024 * 1024)
            raise InvalidInput(f"File too large. Maximum {limit_mb}MB.")

    async def attach_image(
        self,
        access: AccessLevel,
        item_id: str | None,
        content: bytes | None,
        content_type: str | None,
        upload_name: str | None = None,
    ) -> LibraryRecord:
        """Attach an image to a record, replacing any previous one.

        The stored extension follows the validated content type. The
        upload's own filename is only logged.
        """
        require_write(access)
        if not item_id or content is None:
            raise InvalidInput("Missing image or itemId")
        self.validate_image(content, content_type)
        extension = image_extension(content_type or "")
        return await self._run_detached(self._attach(item_id, content, extension, upload_name))

    async def _attach(
        self, item_id: str, content: bytes, extension: str, upload_name: str | None
    ) -> LibraryRecord:
        image_name = await self.images.store(
            content,
            extension,
            name_factory=partial(image_blob_name, item_id),
        )

        async with self._lifecycle_lock:
            try:
                record, previous = await self._swap_image(item_id, image_name)
            except BaseException:
                await self._rollback(self.images, image_name)
                raise
            if previous != image_name:
                await self._release(self.images, previous)

        record_mutation("attach_image")
        logger.info(
            f"Attached image {image_name} to library record {item_id}",
            extra={"record_id": item_id, "upload_name": upload_name},
        )
        return record

    async def detach_image(self, access: AccessLevel, item_id: str | None) -> LibraryRecord:
        """Remove a record's image; a record without image is left as is."""
        require_write(access)
        if not item_id:
            raise InvalidInput("Missing itemId")
        return await self._run_detached(self._detach(item_id))

    async def _detach(self, item_id: str) -> LibraryRecord:
        async with self._lifecycle_lock:
            record, previous = await self._swap_image(item_id, None)
            await self._release(self.images, previous)

        record_mutation("detach_image")
        return record

    async def _swap_image(
        self, item_id: str, image_name: str | None
    ) -> tuple[LibraryRecord, str | None]:
        swapped: list[tuple[LibraryRecord, str | None]] = []

        def apply(records: Records) -> Records:
            for index, existing in enumerate(records):
                if existing.id == item_id:
                    updated = existing.model_copy(update={"image": image_name})
                    records[index] = updated
                    swapped.append((updated, existing.image))
                    return records
            raise NotFound(RECORD_RESOURCE, item_id)

        await self.documents.mutate(apply)
        return swapped[0]

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    async def verify(
        self,
        *,
        prune: bool = False,
        grace_seconds: float = DEFAULT_PRUNE_GRACE_SECONDS,
    ) -> IntegrityReport:
        """Compare records with stored blobs, optionally deleting orphans.

        Orphans modified within ``grace_seconds`` are reported but never
        pruned, since an upload may not have committed its record yet.
        """
        records = await self.documents.snapshot()
        report = IntegrityReport(records=len(records))

        track_names = set(await self.tracks.list_names())
        image_names = set(await self.images.list_names())
        referenced_tracks: set[str] = set()
        referenced_images: set[str] = set()

        for record in records:
            referenced_tracks.add(record.filename)
            if record.filename not in track_names:
                report.missing_tracks.append((record.id, record.filename))
            if record.image:
                referenced_images.add(record.image)
                if record.image not in image_names:
                    report.missing_images.append((record.id, record.image))

        report.orphan_tracks = sorted(track_names - referenced_tracks)
        report.orphan_images = sorted(image_names - referenced_images)

        if prune:
            cutoff = time.time() - grace_seconds
            async with self._lifecycle_lock:
                report.pruned_tracks = await self._prune(self.tracks, report.orphan_tracks, cutoff)
                report.pruned_images = await self._prune(self.images, report.orphan_images, cutoff)
            # Only orphans that are still on disk count against the report
            pruned_tracks, pruned_images = set(report.pruned_tracks), set(report.pruned_images)
            report.orphan_tracks = [n for n in report.orphan_tracks if n not in pruned_tracks]
            report.orphan_images = [n for n in report.orphan_images if n not in pruned_images]

        if not report.ok:
            logger.warning(
                "Library integrity problems found",
                extra={
                    "missing": len(report.missing_tracks) + len(report.missing_images),
                    "orphans": len(report.orphan_tracks) + len(report.orphan_images),
                },
            )
        return report

    async def _prune(self, store: BlobStore, names: list[str], cutoff: float) -> list[str]:
        pruned = []
        for name in names:
            if await self._prunable(store, name, cutoff) and await store.delete(name):
                logger.info(f"Pruned orphaned blob {name}")
                pruned.append(name)
        if pruned:
            record_mutation("prune")
        return pruned

    async def _prunable(self, store: BlobStore, name: str, cutoff: float) -> bool:
        try:
            return await store.modified_at(name) <= cutoff
        except NotFound:
            return False
