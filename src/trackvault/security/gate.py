"""Two-tier shared-secret access gate.

A presented secret is classified as none, read or write. With no secrets
configured the library is open and every caller gets write access. The
resulting AccessLevel is passed explicitly into every library operation.
"""

from __future__ import annotations

import hmac
from enum import Enum

from trackvault.core.errors import Unauthorized

ACCESS_HEADER = "X-Access-Password"


class AccessLevel(str, Enum):
    """Privilege tier derived from a presented secret."""

    NONE = "none"
    READ = "read"
    WRITE = "write"

    @property
    def can_read(self) -> bool:
        return self in (AccessLevel.READ, AccessLevel.WRITE)

    @property
    def can_write(self) -> bool:
        return self is AccessLevel.WRITE


def _matches(presented: str, secret: str) -> bool:
    return bool(secret) and hmac.compare_digest(presented.encode(), secret.encode())


class AccessGate:
    """Classify credentials against the configured read and write secrets."""

    def __init__(self, read_secret: str | None = None, write_secret: str | None = None):
        self.read_secret = read_secret or ""
        self.write_secret = write_secret or ""

    @property
    def protected(self) -> bool:
        """Whether any secret is configured."""
        return bool(self.read_secret or self.write_secret)

    def classify(self, presented: str | None) -> AccessLevel:
        if not self.protected:
            return AccessLevel.WRITE

        presented = presented or ""
        # Write implies read, so it is checked first
        if _matches(presented, self.write_secret):
            return AccessLevel.WRITE
        if _matches(presented, self.read_secret):
            return AccessLevel.READ
        return AccessLevel.NONE


def require_write(level: AccessLevel) -> None:
    """Raise Unauthorized unless the level grants write access."""
    if not level.can_write:
        raise Unauthorized("Write access required")


def require_read(level: AccessLevel) -> None:
    """Raise Unauthorized unless the level grants read access."""
    if not level.can_read:
        raise Unauthorized("Read access required")
