"""Storage module for trackvault.

Provides the two persistence layers of the library:
- Blob storage for track files and images (local filesystem)
- The library document holding every record (one JSON file)

Blobs are only reachable through records; the document decides which
blobs are live.
"""

from trackvault.storage.base import BlobStore
from trackvault.storage.document import DocumentStore
from trackvault.storage.local import LocalBlobStore

__all__ = [
    "BlobStore",
    "DocumentStore",
    "LocalBlobStore",
]
