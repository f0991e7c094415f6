"""Library API router.

Endpoints:
- GET    /library        - List all records
- POST   /library        - Upload a track (multipart: file, tags)
- PUT    /library        - Update record fields (JSON: id + fields)
- DELETE /library        - Delete a record and its blobs (JSON: id)
- POST   /library/image  - Attach an image (multipart: image, itemId)
- DELETE /library/image  - Detach the image (JSON: itemId)
- POST   /library/save   - Save edited content as new or over an existing record

Form and body fields are optional at the FastAPI level so that the
access check always runs before any field validation.
"""

from __future__ import annotations

from typing import Any

import orjson
from fastapi import APIRouter, Body, File, Form, UploadFile

from trackvault.api.deps import Access, Library
from trackvault.core.errors import InvalidInput
from trackvault.security.gate import require_write

router = APIRouter(prefix="/library", tags=["Library"])


def _parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        tags = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidInput("tags must be a JSON array of strings") from exc
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise InvalidInput("tags must be a JSON array of strings")
    return tags


@router.get("")
async def list_library(library: Library, access: Access) -> list[dict[str, Any]]:
    """Return every record in the library."""
    records = await library.list_records(access)
    return [record.to_document() for record in records]


@router.post("")
async def upload_track(
    library: Library,
    access: Access,
    file: UploadFile | None = File(None),
    tags: str | None = Form(None),
) -> dict[str, Any]:
    """Upload a track file as a new record."""
    require_write(access)
    if file is None or not file.filename:
        raise InvalidInput("No file provided")

    content = await file.read()
    record = await library.create_record(access, content, file.filename, _parse_tags(tags))
    return record.to_document()


@router.put("")
async def update_record(
    library: Library,
    access: Access,
    payload: dict[str, Any] | None = Body(None),
) -> dict[str, Any]:
    """Update the supplied fields of one record."""
    payload = payload or {}
    record = await library.update_record(access, payload.get("id") or "", payload)
    return record.to_document()


@router.delete("")
async def delete_record(
    library: Library,
    access: Access,
    payload: dict[str, Any] | None = Body(None),
) -> dict[str, Any]:
    """Delete a record together with its track and image."""
    payload = payload or {}
    await library.delete_record(access, payload.get("id") or "")
    return {"success": True}


@router.post("/image")
async def attach_image(
    library: Library,
    access: Access,
    image: UploadFile | None = File(None),
    item_id: str | None = Form(None, alias="itemId"),
) -> dict[str, Any]:
    """Attach an image to a record, replacing the previous one."""
    require_write(access)
    content = await image.read() if image is not None else None
    record = await library.attach_image(
        access,
        item_id,
        content,
        image.content_type if image is not None else None,
        image.filename if image is not None else None,
    )
    return {"success": True, "image": record.image, "item": record.to_document()}


@router.delete("/image")
async def detach_image(
    library: Library,
    access: Access,
    payload: dict[str, Any] | None = Body(None),
) -> dict[str, Any]:
    """Remove the image of a record."""
    payload = payload or {}
    record = await library.detach_image(access, payload.get("itemId"))
    return {"success": True, "item": record.to_document()}


@router.post("/save")
async def save_content(
    library: Library,
    access: Access,
    content: str | None = Form(None),
    filename: str | None = Form(None),
    item_id: str | None = Form(None, alias="itemId"),
    mode: str | None = Form(None),
) -> dict[str, Any]:
    """Save track content as a new record or over an existing one."""
    applied_mode, record = await library.save_content(access, content, filename, item_id, mode)
    return {"success": True, "mode": applied_mode, "item": record.to_document()}
