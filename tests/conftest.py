"""Pytest fixtures for allocation engine tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from allocation_engine.models import Base
from allocation_engine.services.actor import Actor, ActorRole
from allocation_engine.services.audit_service import AuditService
from allocation_engine.services.delete_request_service import DeleteRequestService
from allocation_engine.services.ledger_service import AllocationLedgerService
from allocation_engine.services.request_id_validator import RequestIdValidator

# Single shared in-memory SQLite connection per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BUSINESS_TZ = "America/New_York"

# Friday 2025-03-14, 11:00 in New York
FIXED_NOW = datetime(2025, 3, 14, 15, 0, tzinfo=timezone.utc)
TODAY = date(2025, 3, 14)


class FixedClock:
    """Settable clock for lock and late-log tests."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest_asyncio.fixture
async def engine():
    """Create test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def resource_actor() -> Actor:
    return Actor(id=uuid4(), name="Alice Resource", email="Alice@Example.com")


@pytest.fixture
def other_resource() -> Actor:
    return Actor(id=uuid4(), name="Bob Resource", email="bob@example.com")


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id=uuid4(), name="Ada Admin", email="admin@example.com", role=ActorRole.ADMIN)


@pytest.fixture
def ledger(session, clock) -> AllocationLedgerService:
    return AllocationLedgerService(session, clock, BUSINESS_TZ)


@pytest.fixture
def delete_service(session, clock) -> DeleteRequestService:
    return DeleteRequestService(session, clock, BUSINESS_TZ)


@pytest.fixture
def audit(session, clock) -> AuditService:
    return AuditService(session, clock)


@pytest.fixture
def validator(session) -> RequestIdValidator:
    return RequestIdValidator(session)


@pytest.fixture
def location_id():
    return uuid4()


@pytest.fixture
def make_fields(location_id):
    """Factory for valid MRO entry fields."""

    def _make(**overrides: Any) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "location_id": location_id,
            "location_name": "Bronx Care",
            "process_name": "Logging",
            "allocation_date": TODAY,
            "request_id": "",
            "request_type": "New Request",
            "requestor_type": "",
            "count": 1,
        }
        fields.update(overrides)
        return fields

    return _make


@pytest_asyncio.fixture
async def mro_entry(ledger, resource_actor, make_fields):
    """One logged MRO entry for today."""
    return await ledger.create_entry("mro", make_fields(request_id="REQ-100"), resource_actor)
