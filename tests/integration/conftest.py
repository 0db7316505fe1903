"""Integration test fixtures: the API wired to an in-memory database."""

from collections.abc import AsyncGenerator
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.api.app import create_app
from allocation_engine.api.dependencies import get_clock, get_db_session

RESOURCE_ID = UUID("11111111-1111-1111-1111-111111111111")
LOCATION_ID = UUID("22222222-2222-2222-2222-222222222222")

RESOURCE_HEADERS = {
    "X-Actor-Email": "alice@example.com",
    "X-Actor-Id": str(RESOURCE_ID),
    "X-Actor-Name": "Alice Resource",
}

OTHER_RESOURCE_HEADERS = {
    "X-Actor-Email": "bob@example.com",
    "X-Actor-Id": "44444444-4444-4444-4444-444444444444",
    "X-Actor-Name": "Bob Resource",
}

ADMIN_HEADERS = {
    "X-Actor-Email": "admin@example.com",
    "X-Actor-Id": "33333333-3333-3333-3333-333333333333",
    "X-Actor-Name": "Ada Admin",
    "X-Actor-Role": "admin",
}


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, clock) -> AsyncGenerator[AsyncClient, None]:
    """Get async HTTP client backed by the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def entry_payload():
    """Factory for a valid MRO entry request body."""

    def _make(**overrides):
        payload = {
            "location_id": str(LOCATION_ID),
            "location_name": "Bronx Care",
            "process_name": "Logging",
            "allocation_date": "2025-03-14",
            "request_id": "REQ-1",
            "request_type": "New Request",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest_asyncio.fixture
async def created_entry(client, entry_payload) -> dict:
    """One MRO entry created through the API."""
    response = await client.post(
        "/api/v1/allocations/mro", headers=RESOURCE_HEADERS, json=entry_payload()
    )
    assert response.status_code == 201, response.text
    return response.json()
