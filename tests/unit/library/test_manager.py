"""Tests for the library asset manager."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Any

import pytest

from tests.samples import GPX_SAMPLE, ONE_MIB
from trackvault.core.errors import InvalidInput, NotFound, StorageFailure, Unauthorized
from trackvault.library import LibraryManager
from trackvault.security import AccessLevel


async def _failing_commit(*args: Any, **kwargs: Any) -> Any:
    raise StorageFailure("disk full")


class TestAccess:
    """Every operation checks the caller's access level first."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level", [AccessLevel.NONE, AccessLevel.READ])
    async def test_writes_rejected_without_side_effects(
        self, manager: LibraryManager, library_dir: Path, level: AccessLevel
    ) -> None:
        with pytest.raises(Unauthorized):
            await manager.create_record(level, GPX_SAMPLE, "trail.gpx")
        with pytest.raises(Unauthorized):
            await manager.save_content(level, "<gpx/>", "t.gpx")
        with pytest.raises(Unauthorized):
            await manager.update_record(level, "any", {"tags": []})
        with pytest.raises(Unauthorized):
            await manager.delete_record(level, "any")
        with pytest.raises(Unauthorized):
            await manager.attach_image(level, "any", b"x" * 7 * ONE_MIB, "text/plain")
        with pytest.raises(Unauthorized):
            await manager.detach_image(level, "any")

        assert not library_dir.exists()

    @pytest.mark.asyncio
    async def test_reads_require_read(self, manager: LibraryManager) -> None:
        with pytest.raises(Unauthorized):
            await manager.list_records(AccessLevel.NONE)
        with pytest.raises(Unauthorized):
            await manager.open_track(AccessLevel.NONE, "x.gpx")
        assert await manager.list_records(AccessLevel.READ) == []


class TestCreate:
    """Test uploading new tracks."""

    @pytest.mark.asyncio
    async def test_create_roundtrip(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx", ["alps"])

        assert record.name == "trail.gpx"
        assert record.tags == ["alps"]
        assert record.filename.endswith("_trail.gpx")
        assert [r.id for r in await manager.list_records(write)] == [record.id]

        chunks = await manager.open_track(write, record.filename)
        assert b"".join([chunk async for chunk in chunks]) == GPX_SAMPLE

    @pytest.mark.asyncio
    async def test_same_name_twice_gives_distinct_blobs(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        first = await manager.create_record(write, b"one", "trail.gpx")
        second = await manager.create_record(write, b"two", "trail.gpx")

        assert first.id != second.id
        assert first.filename != second.filename

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back_blob(
        self,
        manager: LibraryManager,
        write: AccessLevel,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failed commit leaves no orphaned track behind."""
        monkeypatch.setattr(manager.documents, "insert", _failing_commit)

        with pytest.raises(StorageFailure):
            await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        assert await manager.tracks.list_names() == []

    @pytest.mark.asyncio
    async def test_missing_name(self, manager: LibraryManager, write: AccessLevel) -> None:
        with pytest.raises(InvalidInput):
            await manager.create_record(write, GPX_SAMPLE, "")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ticks", [1, 2, 5])
    async def test_cancelled_caller_leaves_library_consistent(
        self, manager: LibraryManager, write: AccessLevel, ticks: int
    ) -> None:
        """A request cancelled mid-upload ends with the record and blob both kept or both gone."""
        caller = asyncio.create_task(manager.create_record(write, GPX_SAMPLE, "trail.gpx"))
        for _ in range(ticks):
            await asyncio.sleep(0)
        caller.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await caller

        # Let the detached upload finish
        pending = asyncio.all_tasks() - {asyncio.current_task()}
        await asyncio.gather(*pending, return_exceptions=True)

        report = await manager.verify()
        assert report.ok, report.to_dict()
        assert report.records in (0, 1)
        assert len(await manager.tracks.list_names()) == report.records


class TestSaveContent:
    """Test saving edited track content."""

    @pytest.mark.asyncio
    async def test_save_new(self, manager: LibraryManager, write: AccessLevel) -> None:
        mode, record = await manager.save_content(write, "<gpx/>", "edited.gpx")

        assert mode == "new"
        assert record.tags == []
        assert await manager.tracks.read(record.filename) == b"<gpx/>"

    @pytest.mark.asyncio
    async def test_overwrite_in_place(self, manager: LibraryManager, write: AccessLevel) -> None:
        original = await manager.create_record(write, b"<gpx>old</gpx>", "t.gpx", ["keep"])

        mode, record = await manager.save_content(
            write, "<gpx>new</gpx>", "t.gpx", item_id=original.id, mode="overwrite"
        )

        assert mode == "overwrite"
        assert record.id == original.id
        assert record.filename == original.filename
        assert record.tags == ["keep"]
        assert record.date >= original.date
        assert await manager.tracks.read(original.filename) == b"<gpx>new</gpx>"
        assert len(await manager.list_records(write)) == 1

    @pytest.mark.asyncio
    async def test_overwrite_unknown_id(self, manager: LibraryManager, write: AccessLevel) -> None:
        with pytest.raises(NotFound):
            await manager.save_content(write, "<gpx/>", "t.gpx", item_id="nope", mode="overwrite")
        assert await manager.tracks.list_names() == []

    @pytest.mark.asyncio
    async def test_overwrite_without_id_creates(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        mode, _ = await manager.save_content(write, "<gpx/>", "t.gpx", mode="overwrite")
        assert mode == "new"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content,filename", [("", "t.gpx"), ("<gpx/>", ""), (None, None)])
    async def test_missing_fields(
        self,
        manager: LibraryManager,
        write: AccessLevel,
        content: str | None,
        filename: str | None,
    ) -> None:
        with pytest.raises(InvalidInput):
            await manager.save_content(write, content, filename)


class TestUpdate:
    """Test partial record updates."""

    @pytest.mark.asyncio
    async def test_update_fields(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        updated = await manager.update_record(
            write,
            record.id,
            {"tags": ["a", "b"], "category": "running", "style": {"color": "#00ff00"}},
        )

        assert updated.tags == ["a", "b"]
        assert updated.category == "running"
        assert updated.style is not None and updated.style.color == "#00ff00"
        assert updated.filename == record.filename

    @pytest.mark.asyncio
    async def test_invalid_enum(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        with pytest.raises(InvalidInput):
            await manager.update_record(write, record.id, {"category": "hiking"})

    @pytest.mark.asyncio
    async def test_race_webpage_normalized(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        kept = await manager.update_record(
            write, record.id, {"raceWebpage": "https://race.example.com"}
        )
        assert kept.race_webpage == "https://race.example.com"

        cleared = await manager.update_record(write, record.id, {"raceWebpage": "not a url"})
        assert cleared.race_webpage is None

    @pytest.mark.asyncio
    async def test_unknown_and_missing_id(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        with pytest.raises(NotFound):
            await manager.update_record(write, "nope", {"tags": []})
        with pytest.raises(InvalidInput):
            await manager.update_record(write, "", {"tags": []})


class TestImages:
    """Test attaching and detaching images."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "upload_name,content_type,extension",
        [
            ("evil.html", "image/png", ".png"),
            ("photo.svg", "image/jpeg", ".jpg"),
            ("noextension", "image/webp", ".webp"),
            (None, "image/gif", ".gif"),
        ],
    )
    async def test_extension_follows_content_type(
        self,
        manager: LibraryManager,
        write: AccessLevel,
        upload_name: str | None,
        content_type: str,
        extension: str,
    ) -> None:
        """The upload's filename never decides the stored extension."""
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        attached = await manager.attach_image(write, record.id, b"img", content_type, upload_name)

        assert attached.image is not None and attached.image.endswith(extension)
        assert await manager.images.list_names() == [attached.image]

    @pytest.mark.asyncio
    async def test_attach_replace_detach(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        """Replacing an image deletes the old blob; detaching deletes the last one."""
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        first = await manager.attach_image(write, record.id, b"\xff\xd8one", "image/jpeg", "a.jpg")
        assert first.image is not None
        assert first.image.startswith(f"{record.id}-")
        assert await manager.images.list_names() == [first.image]

        second = await manager.attach_image(write, record.id, b"png", "image/png", "b.png")
        assert second.image is not None and second.image.endswith(".png")
        assert await manager.images.list_names() == [second.image]

        detached = await manager.detach_image(write, record.id)
        assert detached.image is None
        assert await manager.images.list_names() == []

    @pytest.mark.asyncio
    async def test_detach_without_image(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        assert (await manager.detach_image(write, record.id)).image is None

    @pytest.mark.asyncio
    async def test_oversized_image_rejected(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")

        with pytest.raises(InvalidInput):
            await manager.attach_image(write, record.id, b"x" * 6 * ONE_MIB, "image/jpeg", "a.jpg")

        assert await manager.images.list_names() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["image/svg+xml", "text/plain", None])
    async def test_disallowed_type_rejected(
        self, manager: LibraryManager, write: AccessLevel, content_type: str | None
    ) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        with pytest.raises(InvalidInput):
            await manager.attach_image(write, record.id, b"x", content_type)

    @pytest.mark.asyncio
    async def test_attach_to_unknown_record_rolls_back(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        with pytest.raises(NotFound):
            await manager.attach_image(write, "nope", b"png", "image/png", "a.png")
        assert await manager.images.list_names() == []

    @pytest.mark.asyncio
    async def test_attach_commit_failure_rolls_back(
        self,
        manager: LibraryManager,
        write: AccessLevel,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The new image is deleted and the old one kept when the commit fails."""
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        first = await manager.attach_image(write, record.id, b"one", "image/png", "a.png")
        monkeypatch.setattr(manager.documents, "mutate", _failing_commit)

        with pytest.raises(StorageFailure):
            await manager.attach_image(write, record.id, b"two", "image/png", "b.png")

        assert await manager.images.list_names() == [first.image]

    @pytest.mark.asyncio
    async def test_missing_item_id(self, manager: LibraryManager, write: AccessLevel) -> None:
        with pytest.raises(InvalidInput):
            await manager.attach_image(write, None, b"x", "image/png")
        with pytest.raises(InvalidInput):
            await manager.detach_image(write, "")


class TestDelete:
    """Test record deletion."""

    @pytest.mark.asyncio
    async def test_delete_removes_blobs(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        await manager.attach_image(write, record.id, b"png", "image/png", "a.png")

        removed = await manager.delete_record(write, record.id)

        assert removed.id == record.id
        assert await manager.list_records(write) == []
        assert await manager.tracks.list_names() == []
        assert await manager.images.list_names() == []

    @pytest.mark.asyncio
    async def test_delete_unknown(self, manager: LibraryManager, write: AccessLevel) -> None:
        with pytest.raises(NotFound):
            await manager.delete_record(write, "nope")

    @pytest.mark.asyncio
    async def test_delete_with_missing_blob(
        self, manager: LibraryManager, write: AccessLevel
    ) -> None:
        """A record whose blob already vanished still deletes cleanly."""
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        await manager.tracks.delete(record.filename)

        await manager.delete_record(write, record.id)

        assert await manager.list_records(write) == []

    @pytest.mark.asyncio
    async def test_open_deleted_track(self, manager: LibraryManager, write: AccessLevel) -> None:
        record = await manager.create_record(write, GPX_SAMPLE, "trail.gpx")
        await manager.delete_record(write, record.id)

        with pytest.raises(NotFound):
            await manager.open_track(write, record.filename)
