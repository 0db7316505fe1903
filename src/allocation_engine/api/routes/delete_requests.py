"""Delete request workflow API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from allocation_engine.api.dependencies import CurrentActor, DbSession, DeleteRequests, LedgerService
from allocation_engine.api.routes.allocations import entry_response
from allocation_engine.api.schemas import (
    DeleteRequestCreate,
    DeleteRequestListResponse,
    DeleteRequestResponse,
    ErrorResponse,
    ReviewRequest,
    ReviewResponse,
)
from allocation_engine.clients import ClientType

router = APIRouter(tags=["delete-requests"])


@router.post(
    "/allocations/entries/{entry_id}/delete-requests",
    response_model=DeleteRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def request_delete(
    db: DbSession,
    service: DeleteRequests,
    actor: CurrentActor,
    entry_id: Annotated[UUID, Path()],
    payload: DeleteRequestCreate,
) -> DeleteRequestResponse:
    """Submit a delete request for an entry."""
    delete_request = await service.request_delete(entry_id, payload.reason, actor)
    await db.commit()
    return DeleteRequestResponse.model_validate(delete_request)


@router.get(
    "/delete-requests",
    response_model=DeleteRequestListResponse,
)
async def list_pending_delete_requests(
    service: DeleteRequests,
    client_type: ClientType | None = None,
) -> DeleteRequestListResponse:
    """Pending delete requests awaiting admin review."""
    requests = await service.list_pending_delete_requests(client_type)
    return DeleteRequestListResponse(
        items=[DeleteRequestResponse.model_validate(r) for r in requests],
        total=len(requests),
    )


@router.post(
    "/delete-requests/{delete_request_id}/review",
    response_model=ReviewResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def review_delete(
    db: DbSession,
    service: DeleteRequests,
    ledger: LedgerService,
    actor: CurrentActor,
    delete_request_id: Annotated[UUID, Path()],
    payload: ReviewRequest,
) -> ReviewResponse:
    """Approve (soft or hard) or reject a pending delete request."""
    outcome = await service.review_delete(
        delete_request_id,
        payload.action,
        actor,
        delete_mode=payload.delete_mode,
        comment=payload.comment,
    )
    await db.commit()
    return ReviewResponse(
        delete_request=DeleteRequestResponse.model_validate(outcome.delete_request),
        entry_removed=outcome.entry_removed,
        entry=entry_response(ledger, outcome.entry) if outcome.entry is not None else None,
    )
