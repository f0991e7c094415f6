"""Blob download endpoints.

Serves stored track files and images under the same paths the web
front-end links to:
- GET /gpx/{filename}
- GET /gpx/images/{filename}
"""

from __future__ import annotations

from fastapi import APIRouter
from starlette.responses import StreamingResponse

from trackvault.api.deps import Access, Library
from trackvault.core.names import image_media_type

router = APIRouter(prefix="/gpx", tags=["Blobs"])

GPX_MEDIA_TYPE = "application/gpx+xml"


@router.get("/images/{filename}")
async def get_image(filename: str, library: Library, access: Access) -> StreamingResponse:
    """Stream an attached image.

    Only the four accepted image types are served as such; any other
    extension in the image directory is sent as opaque bytes.
    """
    chunks = await library.open_image(access, filename)
    return StreamingResponse(
        chunks,
        media_type=image_media_type(filename),
        headers={"X-Content-Type-Options": "nosniff"},
    )


@router.get("/{filename}")
async def get_track(filename: str, library: Library, access: Access) -> StreamingResponse:
    """Stream a track file."""
    chunks = await library.open_track(access, filename)
    return StreamingResponse(
        chunks,
        media_type=GPX_MEDIA_TYPE,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
