"""Test configuration for importing the application package."""

from __future__ import annotations

import os

# Required settings must exist before the app module is imported.
os.environ["TEXTBOOK_ALLOWED_ORIGINS"] = "http://localhost"
os.environ["TEXTBOOK_STORAGE_BACKEND"] = "memory"
os.environ["TEXTBOOK_SECTION_PACING_SECONDS"] = "0"
os.environ.pop("TEXTBOOK_PG_DSN", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from textbook_engine.main import app  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def async_client():
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
