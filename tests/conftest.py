"""Shared fixtures for reshaper tests.

Provides:
- Async HTTP client bound to a fresh app instance (ASGITransport, no network)
- Transport headers carrying an idempotency key
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.reshaper.main import create_app


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers() -> dict[str, str]:
    return {"idempotency-key": "evt_7f3a91"}
