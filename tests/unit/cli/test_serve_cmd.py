"""Tests for the serve CLI command."""

from __future__ import annotations

from typing import Any

import pytest
import uvicorn
from typer.testing import CliRunner

from trackvault.cli import app
from trackvault.config import settings

runner = CliRunner()


@pytest.fixture
def uvicorn_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Record uvicorn.run invocations instead of starting a server."""
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(uvicorn, "run", lambda **kwargs: calls.append(kwargs))
    return calls


class TestServeCommand:
    """Test `trackvault serve`."""

    def test_log_level_defaults_to_settings(self, uvicorn_calls: list[dict[str, Any]]) -> None:
        result = runner.invoke(app, ["serve"])

        assert result.exit_code == 0, result.output
        assert uvicorn_calls[0]["log_level"] == settings.log_level.lower()

    def test_log_level_option(self, uvicorn_calls: list[dict[str, Any]]) -> None:
        result = runner.invoke(app, ["serve", "--log-level", "DEBUG"])

        assert result.exit_code == 0, result.output
        assert uvicorn_calls[0]["log_level"] == "debug"

    def test_single_worker_factory(self, uvicorn_calls: list[dict[str, Any]]) -> None:
        result = runner.invoke(app, ["serve", "--port", "9000"])

        assert result.exit_code == 0, result.output
        call = uvicorn_calls[0]
        assert call["factory"] is True
        assert call["workers"] == 1
        assert call["port"] == 9000
