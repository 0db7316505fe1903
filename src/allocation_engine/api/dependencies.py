"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.config import get_settings
from allocation_engine.database import init_db
from allocation_engine.services.actor import Actor, ActorRole
from allocation_engine.services.delete_request_service import DeleteRequestService
from allocation_engine.services.ledger_service import AllocationLedgerService
from allocation_engine.services.lock_rules import Clock, utc_clock
from allocation_engine.services.payout_service import PayoutService
from allocation_engine.services.request_id_validator import RequestIdValidator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_clock() -> Clock:
    """Wall clock used for lock and late-log evaluation."""
    return utc_clock


async def get_actor(
    x_actor_email: Annotated[str | None, Header()] = None,
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_name: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the caller identity from X-Actor-* headers."""
    if not x_actor_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Email header is required",
        )
    actor_id = None
    if x_actor_id:
        try:
            actor_id = UUID(x_actor_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Actor-Id format",
            )
    try:
        role = ActorRole((x_actor_role or ActorRole.RESOURCE.value).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-Role",
        )
    return Actor(
        id=actor_id,
        name=x_actor_name or x_actor_email,
        email=x_actor_email,
        role=role,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
CurrentClock = Annotated[Clock, Depends(get_clock)]


def get_ledger_service(db: DbSession, clock: CurrentClock) -> AllocationLedgerService:
    return AllocationLedgerService(db, clock, get_settings().business_timezone)


def get_delete_request_service(db: DbSession, clock: CurrentClock) -> DeleteRequestService:
    return DeleteRequestService(db, clock, get_settings().business_timezone)


def get_validator(db: DbSession) -> RequestIdValidator:
    return RequestIdValidator(db)


def get_payout_service(db: DbSession) -> PayoutService:
    return PayoutService(db)


LedgerService = Annotated[AllocationLedgerService, Depends(get_ledger_service)]
DeleteRequests = Annotated[DeleteRequestService, Depends(get_delete_request_service)]
Validator = Annotated[RequestIdValidator, Depends(get_validator)]
Payouts = Annotated[PayoutService, Depends(get_payout_service)]
