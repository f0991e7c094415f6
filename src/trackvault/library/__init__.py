"""Library orchestration: records and their blobs together."""

from trackvault.library.manager import IntegrityReport, LibraryManager

__all__ = ["IntegrityReport", "LibraryManager"]
