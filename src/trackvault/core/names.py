"""Identifier, timestamp and blob filename helpers."""

from __future__ import annotations

import re
import time
from datetime import UTC, datetime
from typing import Final
from urllib.parse import urlsplit
from uuid import uuid4

from trackvault.core.errors import InvalidInput

_UNSAFE_NAME: Final = re.compile(r"[^a-z0-9.]", re.IGNORECASE)
_UNSAFE_ID: Final = re.compile(r"[^a-z0-9-]", re.IGNORECASE)


def new_record_id() -> str:
    return str(uuid4())


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def sanitize_name(name: str) -> str:
    """Replace anything outside [a-z0-9.] with '_' and lower-case the result."""
    return _UNSAFE_NAME.sub("_", name).lower()


def track_blob_name(suggested_name: str) -> str:
    """Generate a unique blob filename for an uploaded track.

    Format: ``{timestamp_ms}_{token}_{sanitized_name}``. The random token
    keeps two uploads of the same name in the same millisecond apart.
    """
    safe = sanitize_name(suggested_name) or "track"
    return f"{_now_ms()}_{uuid4().hex[:8]}_{safe}"


IMAGE_EXTENSIONS: Final[dict[str, str]] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

# Served media types are keyed by extension; anything else is opaque bytes.
_IMAGE_MEDIA_TYPES: Final[dict[str, str]] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}

OPAQUE_MEDIA_TYPE: Final[str] = "application/octet-stream"


def image_extension(content_type: str) -> str:
    """Extension for a validated image content type."""
    try:
        return IMAGE_EXTENSIONS[content_type]
    except KeyError:
        raise InvalidInput("Invalid file type. Use JPEG, PNG, GIF, or WebP.") from None


def image_media_type(filename: str) -> str:
    if "." not in filename:
        return OPAQUE_MEDIA_TYPE
    return _IMAGE_MEDIA_TYPES.get(filename.rsplit(".", 1)[-1].lower(), OPAQUE_MEDIA_TYPE)


def image_blob_name(record_id: str, extension: str) -> str:
    """Generate ``{recordId}-{timestamp_ms}.{ext}`` for an image upload."""
    safe_id = _UNSAFE_ID.sub("_", record_id) or "item"
    return f"{safe_id}-{_now_ms()}.{extension}"


def validate_blob_name(filename: str) -> str:
    """Reject names that could escape the blob directory."""
    if (
        not filename
        or filename in (".", "..")
        or "/" in filename
        or "\\" in filename
        or "\x00" in filename
    ):
        raise InvalidInput(f"Invalid blob filename: {filename!r}")
    return filename


def normalize_webpage(value: str | None) -> str | None:
    """Return the URL if it is absolute and well-formed, otherwise None.

    A malformed or blank value clears the field rather than failing the
    update.
    """
    if value is None or not value.strip():
        return None
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return value
