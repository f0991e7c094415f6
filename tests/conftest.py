"""Global pytest configuration and fixtures.

Provides a throwaway library directory per test plus managers and
applications wired to it.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from tests.samples import READ_SECRET, WRITE_SECRET
from trackvault.api.app import create_app
from trackvault.config import Settings
from trackvault.library import LibraryManager
from trackvault.security import AccessLevel


@pytest.fixture
def library_dir(tmp_path: Path) -> Path:
    return tmp_path / "gpx"


@pytest.fixture
def open_settings(library_dir: Path) -> Settings:
    """Settings for a library without access passwords."""
    return Settings(library_dir=library_dir, read_password="", write_password="", env="test")


@pytest.fixture
def protected_settings(library_dir: Path) -> Settings:
    """Settings for a library guarded by read and write passwords."""
    return Settings(
        library_dir=library_dir,
        read_password=READ_SECRET,
        write_password=WRITE_SECRET,
        env="test",
    )


@pytest.fixture
def manager(open_settings: Settings) -> LibraryManager:
    return LibraryManager.from_settings(open_settings)


@pytest.fixture
def write() -> AccessLevel:
    return AccessLevel.WRITE


@pytest.fixture
def client(open_settings: Settings) -> Iterator[TestClient]:
    """Test client for an open library."""
    with TestClient(create_app(open_settings)) as test_client:
        yield test_client


@pytest.fixture
def protected_client(protected_settings: Settings) -> Iterator[TestClient]:
    """Test client for a password-protected library."""
    with TestClient(create_app(protected_settings)) as test_client:
        yield test_client
