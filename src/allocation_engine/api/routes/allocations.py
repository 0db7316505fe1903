"""Allocation ledger API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from allocation_engine.api.dependencies import (
    CurrentActor,
    DbSession,
    LedgerService,
    Validator,
)
from allocation_engine.api.schemas import (
    EditHistoryResponse,
    EntryCreate,
    EntryListResponse,
    EntryResponse,
    EntryUpdate,
    ErrorResponse,
    LockRequest,
    RequestIdCheckResponse,
)
from allocation_engine.clients import ClientType
from allocation_engine.models import AllocationEntry
from allocation_engine.services.audit_service import AuditService
from allocation_engine.services.ledger_service import AllocationLedgerService, EntryFilters

router = APIRouter(prefix="/allocations", tags=["allocations"])


def entry_response(ledger: AllocationLedgerService, entry: AllocationEntry) -> EntryResponse:
    """Serialize an entry with its effective lock state."""
    response = EntryResponse.model_validate(entry)
    return response.model_copy(update={"is_locked": ledger.is_locked(entry)})


# ============================================================================
# Single entry operations
# ============================================================================


@router.get(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_entry(
    ledger: LedgerService,
    entry_id: Annotated[UUID, Path()],
) -> EntryResponse:
    """Get one entry, including soft-deleted ones."""
    entry = await ledger.get_entry(entry_id)
    return entry_response(ledger, entry)


@router.patch(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def edit_entry(
    db: DbSession,
    ledger: LedgerService,
    actor: CurrentActor,
    entry_id: Annotated[UUID, Path()],
    payload: EntryUpdate,
) -> EntryResponse:
    """Edit an entry. Unchanged values are ignored; a no-op edit writes nothing."""
    entry = await ledger.edit_entry(
        entry_id,
        payload.updates,
        payload.change_reason,
        actor,
        change_notes=payload.change_notes,
        override_request_id_warning=payload.override_request_id_warning,
    )
    await db.commit()
    return entry_response(ledger, entry)


@router.get(
    "/entries/{entry_id}/history",
    response_model=list[EditHistoryResponse],
)
async def get_edit_history(
    db: DbSession,
    entry_id: Annotated[UUID, Path()],
) -> list[EditHistoryResponse]:
    """Edit history for an entry, oldest first. Available after a hard delete."""
    records = await AuditService(db).get_edit_history(entry_id)
    return [EditHistoryResponse.model_validate(record) for record in records]


@router.post(
    "/entries/{entry_id}/lock",
    response_model=EntryResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def lock_entry(
    db: DbSession,
    ledger: LedgerService,
    actor: CurrentActor,
    entry_id: Annotated[UUID, Path()],
    payload: LockRequest | None = None,
) -> EntryResponse:
    """Administratively lock an entry (idempotent)."""
    entry = await ledger.lock_entry(entry_id, actor, payload.reason if payload else None)
    await db.commit()
    return entry_response(ledger, entry)


# ============================================================================
# Per-client ledger operations
# ============================================================================


@router.post(
    "/{client_type}",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_entry(
    db: DbSession,
    ledger: LedgerService,
    actor: CurrentActor,
    client_type: Annotated[ClientType, Path()],
    payload: EntryCreate,
) -> EntryResponse:
    """Log a new allocation entry."""
    fields = payload.model_dump(exclude={"override_request_id_warning"})
    entry = await ledger.create_entry(
        client_type,
        fields,
        actor,
        override_request_id_warning=payload.override_request_id_warning,
    )
    await db.commit()
    return entry_response(ledger, entry)


@router.get(
    "/{client_type}",
    response_model=EntryListResponse,
)
async def list_entries(
    ledger: LedgerService,
    client_type: Annotated[ClientType, Path()],
    resource_email: str | None = None,
    location_id: UUID | None = None,
    process_id: UUID | None = None,
    request_type: str | None = None,
    request_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    include_deleted: bool = False,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> EntryListResponse:
    """List a client's entries with optional filters."""
    filters = EntryFilters(
        resource_email=resource_email,
        location_id=location_id,
        process_id=process_id,
        request_type=request_type,
        request_id=request_id,
        date_from=date_from,
        date_to=date_to,
        include_deleted=include_deleted,
        limit=limit,
        offset=offset,
    )
    entries = await ledger.list_entries(client_type, filters)
    return EntryListResponse(
        items=[entry_response(ledger, entry) for entry in entries],
        total=len(entries),
    )


@router.get(
    "/{client_type}/check-request-id",
    response_model=RequestIdCheckResponse,
)
async def check_request_id(
    validator: Validator,
    client_type: Annotated[ClientType, Path()],
    request_id: str = "",
    exclude_entry_id: UUID | None = None,
) -> RequestIdCheckResponse:
    """Look up prior use of a request id and the suggested request type."""
    check = await validator.check_request_id(client_type, request_id, exclude_entry_id)
    return RequestIdCheckResponse.model_validate(check)


@router.get(
    "/{client_type}/late-logs",
    response_model=EntryListResponse,
)
async def list_late_logs(
    ledger: LedgerService,
    client_type: Annotated[ClientType, Path()],
    resource_email: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> EntryListResponse:
    """Entries logged on a later day than their allocation date."""
    filters = EntryFilters(resource_email=resource_email, date_from=date_from, date_to=date_to)
    entries = await ledger.list_late_logs(client_type, filters)
    return EntryListResponse(
        items=[entry_response(ledger, entry) for entry in entries],
        total=len(entries),
    )
