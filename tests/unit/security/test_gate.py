"""Tests for the two-tier access gate."""

from __future__ import annotations

import pytest

from trackvault.core.errors import Unauthorized
from trackvault.security import AccessGate, AccessLevel
from trackvault.security.gate import require_read, require_write


class TestClassify:
    """Test credential classification."""

    @pytest.mark.parametrize(
        "read_secret,write_secret,presented,expected",
        [
            # No secrets configured: everyone may write
            ("", "", None, AccessLevel.WRITE),
            ("", "", "anything", AccessLevel.WRITE),
            # Both secrets configured
            ("r", "w", "w", AccessLevel.WRITE),
            ("r", "w", "r", AccessLevel.READ),
            ("r", "w", "x", AccessLevel.NONE),
            ("r", "w", None, AccessLevel.NONE),
            ("r", "w", "", AccessLevel.NONE),
            # Only a write secret
            ("", "w", "w", AccessLevel.WRITE),
            ("", "w", "", AccessLevel.NONE),
            ("", "w", None, AccessLevel.NONE),
            # Only a read secret
            ("r", "", "r", AccessLevel.READ),
            ("r", "", "", AccessLevel.NONE),
            # Same secret for both tiers grants write
            ("s", "s", "s", AccessLevel.WRITE),
        ],
    )
    def test_table(
        self,
        read_secret: str,
        write_secret: str,
        presented: str | None,
        expected: AccessLevel,
    ) -> None:
        gate = AccessGate(read_secret, write_secret)
        assert gate.classify(presented) is expected

    def test_near_miss_is_rejected(self) -> None:
        """Prefixes and case variants do not match."""
        gate = AccessGate("reader", "writer")
        assert gate.classify("write") is AccessLevel.NONE
        assert gate.classify("WRITER") is AccessLevel.NONE
        assert gate.classify("writer ") is AccessLevel.NONE

    def test_protected(self) -> None:
        assert not AccessGate().protected
        assert not AccessGate(None, None).protected
        assert AccessGate("r", "").protected
        assert AccessGate("", "w").protected


class TestRequire:
    """Test access requirements."""

    def test_write_required(self) -> None:
        require_write(AccessLevel.WRITE)
        for level in (AccessLevel.READ, AccessLevel.NONE):
            with pytest.raises(Unauthorized):
                require_write(level)

    def test_read_required(self) -> None:
        require_read(AccessLevel.READ)
        require_read(AccessLevel.WRITE)
        with pytest.raises(Unauthorized):
            require_read(AccessLevel.NONE)
