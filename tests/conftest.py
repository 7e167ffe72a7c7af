"""Shared test fixtures."""

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import respx

from readeck_mcp.core.config import Settings
from readeck_mcp.readeck.api_client import ReadeckClient
from readeck_mcp.server.dispatcher import Dispatcher

BASE_URL = "http://localhost:8000"
API_URL = f"{BASE_URL}/api"
API_TOKEN = "rd_test_token"


@pytest.fixture
def mock_api() -> Generator[respx.MockRouter]:
    """Context manager for mocking Readeck API responses."""
    with respx.mock(base_url=API_URL, assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
async def client(mock_api: respx.MockRouter) -> AsyncGenerator[ReadeckClient]:  # noqa: ARG001
    """Readeck client created inside the respx context, with no backoff delay."""
    readeck = ReadeckClient(API_URL, API_TOKEN, timeout=5.0, backoff_base=0.0)
    yield readeck
    await readeck.aclose()


@pytest.fixture
def dispatcher(client: ReadeckClient) -> Dispatcher:
    """Dispatcher wired to the mocked client."""
    return Dispatcher(client, instructions="Test instructions.")


@pytest.fixture
def settings() -> Settings:
    """Minimal valid settings, isolated from the environment file."""
    return Settings(
        _env_file=None,
        READECK_BASE_URL=BASE_URL,
        READECK_API_TOKEN=API_TOKEN,
    )


@pytest.fixture
def sample_bookmark() -> dict[str, Any]:
    """Sample bookmark as returned by the Readeck API."""
    return {
        "id": "bk1",
        "url": "https://example.com/articles/python-async",
        "title": "Understanding Python Async",
        "site_name": "Example Blog",
        "author": "Jane Q Doe",
        "published": "2024-02-10T08:00:00Z",
        "created": "2024-03-01T12:00:00Z",
        "updated": "2024-03-02T12:00:00Z",
        "is_archived": False,
        "is_marked": False,
        "favorite": "yes",
        "labels": ["python", "async"],
        "description": "A deep dive into asyncio.\nCovers tasks and event loops.",
    }


@pytest.fixture
def sample_highlights() -> list[dict[str, Any]]:
    """Sample annotations for bookmark bk1."""
    return [
        {
            "id": "h1",
            "bookmark_id": "bk1",
            "text": "The event loop runs one task at a time.",
            "note": "Key point",
            "created": "2024-03-01T13:00:00Z",
        },
        {
            "id": "h2",
            "text": "Await yields control back to the loop.",
            "created_at": "2024-03-01 14:00:00",
        },
    ]
