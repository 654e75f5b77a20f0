"""Shared test fixtures for extragrid."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from extragrid import AccessToken, ApiKey, Spreadsheet
from extragrid.config import Settings
from tests.fakes import DOC_ID, FakeGoogle


@pytest.fixture
def fake() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def transport(fake: FakeGoogle) -> httpx.MockTransport:
    return httpx.MockTransport(fake.handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
async def doc(
    transport: httpx.MockTransport, settings: Settings
) -> Any:
    """A Spreadsheet authenticated with a bearer token, not yet loaded."""
    spreadsheet = Spreadsheet(
        DOC_ID, AccessToken("test-token"), settings=settings, transport=transport
    )
    yield spreadsheet
    await spreadsheet.close()


@pytest.fixture
async def loaded_doc(doc: Spreadsheet) -> Spreadsheet:
    await doc.load_info()
    return doc


@pytest.fixture
async def public_doc(
    transport: httpx.MockTransport, settings: Settings
) -> Any:
    """A Spreadsheet accessed with an API key only."""
    spreadsheet = Spreadsheet(
        DOC_ID, ApiKey("test-key"), settings=settings, transport=transport
    )
    yield spreadsheet
    await spreadsheet.close()
