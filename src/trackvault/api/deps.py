"""Shared FastAPI dependencies for trackvault routers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from trackvault.library.manager import LibraryManager
from trackvault.security.gate import ACCESS_HEADER, AccessGate, AccessLevel


def get_library(request: Request) -> LibraryManager:
    """The application's single LibraryManager."""
    return request.app.state.library


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


async def get_access_level(
    gate: Annotated[AccessGate, Depends(get_gate)],
    access_password: Annotated[str | None, Header(alias=ACCESS_HEADER)] = None,
) -> AccessLevel:
    """Classify the request's access password.

    The level is only computed here; each library operation decides what
    it requires.
    """
    return gate.classify(access_password)


Library = Annotated[LibraryManager, Depends(get_library)]
Access = Annotated[AccessLevel, Depends(get_access_level)]
