"""Delete request workflow - submission and admin review."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.clients import ClientType, get_profile
from allocation_engine.config import get_settings
from allocation_engine.errors import (
    InvalidTransitionError,
    NotFoundError,
    OwnershipError,
    StateError,
    ValidationError,
)
from allocation_engine.models import AllocationEntry, DeleteRequest
from allocation_engine.services.actor import Actor
from allocation_engine.services.audit_service import ActivityType, AuditService
from allocation_engine.services.lock_rules import (
    LOCKED_DELETE_MESSAGE,
    Clock,
    ensure_mutable,
    today_in_business_tz,
    utc_clock,
)
from allocation_engine.services.state_machine import (
    DeleteMode,
    DeleteRequestStateMachine,
    DeleteRequestStatus,
    ReviewAction,
)

logger = logging.getLogger(__name__)

ALREADY_PENDING_MESSAGE = "Delete request already pending for this entry"
OWN_ENTRIES_ONLY_MESSAGE = "You can only delete your own entries"


@dataclass
class ReviewOutcome:
    """Result of reviewing a delete request.

    `entry` is None after a hard delete.
    """

    delete_request: DeleteRequest
    action: ReviewAction
    allocation_entry_id: UUID
    entry: AllocationEntry | None
    delete_mode: DeleteMode | None = None

    @property
    def entry_removed(self) -> bool:
        return self.entry is None


class DeleteRequestService:
    """Service for the delete request lifecycle.

    Operations:
    - request_delete: resource submits a reason (none → pending)
    - review_delete: admin approves (soft/hard) or rejects (pending → resolved)
    - list_pending_delete_requests: admin queue
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utc_clock,
        business_timezone: str | None = None,
    ):
        self.session = session
        self.clock = clock
        self.business_timezone = business_timezone or get_settings().business_timezone
        self.audit = AuditService(session, clock)

    async def request_delete(
        self,
        entry_id: UUID,
        reason: str,
        actor: Actor,
    ) -> DeleteRequest:
        """Open a delete request for an entry.

        The entry's pending flag is claimed with a conditional update, so of
        two concurrent submissions exactly one succeeds.

        Raises:
            ValidationError: Missing reason, or a request is already pending
            NotFoundError: Entry does not exist
            OwnershipError: Resource asking to delete someone else's entry
            StateError: Entry is deleted or locked
        """
        if not (reason or "").strip():
            raise ValidationError("Delete reason is required")

        entry = await self.session.get(AllocationEntry, entry_id)
        if entry is None:
            raise NotFoundError("Allocation entry", entry_id)
        if not actor.can_act_for(entry.resource_id):
            raise OwnershipError(OWN_ENTRIES_ONLY_MESSAGE)
        if entry.is_deleted:
            raise StateError("Entry is already deleted")

        today = today_in_business_tz(self.clock, self.business_timezone)
        ensure_mutable(entry.allocation_date, entry.is_locked, today, LOCKED_DELETE_MESSAGE)

        if entry.has_pending_delete_request:
            raise ValidationError(ALREADY_PENDING_MESSAGE)

        result = await self.session.execute(
            update(AllocationEntry)
            .where(
                AllocationEntry.allocation_entry_id == entry_id,
                AllocationEntry.has_pending_delete_request.is_(False),
                AllocationEntry.is_deleted.is_(False),
            )
            .values(has_pending_delete_request=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Another submission claimed the flag first
            raise ValidationError(ALREADY_PENDING_MESSAGE)
        entry.has_pending_delete_request = True

        # With the flag claimed, the last request (if any) is resolved
        DeleteRequestStateMachine.validate_transition(
            await self._last_status(entry_id), DeleteRequestStatus.PENDING
        )

        delete_request = DeleteRequest(
            allocation_entry_id=entry_id,
            client_type=entry.client_type,
            requested_by_id=actor.id,
            requested_by_name=actor.name,
            requested_by_email=actor.email,
            requested_at=self.clock(),
            delete_reason=reason.strip(),
            status=DeleteRequestStatus.PENDING.value,
            created_at=self.clock(),
        )
        self.session.add(delete_request)
        await self.session.flush()

        await self.audit.record_activity(
            ActivityType.DELETE_REQUESTED,
            actor,
            entry.client_type,
            entry_id,
            details={
                "delete_request_id": delete_request.delete_request_id,
                "delete_reason": delete_request.delete_reason,
            },
        )
        logger.info("Delete requested for entry %s by %s", entry_id, actor.email)
        return delete_request

    async def review_delete(
        self,
        delete_request_id: UUID,
        action: ReviewAction | str,
        actor: Actor,
        delete_mode: DeleteMode | str | None = None,
        comment: str | None = None,
    ) -> ReviewOutcome:
        """Resolve a pending delete request.

        Approve soft flags the entry deleted; approve hard removes the row
        (edit history and activity log are kept). Reject needs a comment and
        clears the entry's pending flag so a new request can be submitted.

        Raises:
            ValidationError: Bad action/mode, missing reject comment, non-admin actor
            NotFoundError: Delete request does not exist
            InvalidTransitionError: Request is not pending
        """
        try:
            action = ReviewAction(action)
        except ValueError:
            raise ValidationError(f"Invalid review action: {action}") from None

        if not actor.is_admin:
            raise ValidationError("Only admins can review delete requests")

        mode: DeleteMode | None = None
        if action == ReviewAction.APPROVE:
            try:
                mode = DeleteMode(delete_mode or DeleteMode.SOFT)
            except ValueError:
                raise ValidationError(f"Invalid delete mode: {delete_mode}") from None
        elif not (comment or "").strip():
            raise ValidationError("Comment is required when rejecting a delete request")

        delete_request = await self.get_delete_request(delete_request_id)
        to_status = DeleteRequestStateMachine.target_status(action)
        DeleteRequestStateMachine.validate_transition(delete_request.status, to_status)

        reviewed_at = self.clock()
        review_comment = (comment or "").strip() or None
        result = await self.session.execute(
            update(DeleteRequest)
            .where(
                DeleteRequest.delete_request_id == delete_request_id,
                DeleteRequest.status == DeleteRequestStatus.PENDING.value,
            )
            .values(
                status=to_status.value,
                reviewed_by_id=actor.id,
                reviewed_by_email=actor.email,
                reviewed_at=reviewed_at,
                review_comment=review_comment,
                delete_mode=mode.value if mode else None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.refresh(delete_request)
            raise InvalidTransitionError(
                delete_request.status,
                to_status.value,
                "Status changed during review",
            )
        delete_request.status = to_status.value
        delete_request.reviewed_by_id = actor.id
        delete_request.reviewed_by_email = actor.email
        delete_request.reviewed_at = reviewed_at
        delete_request.review_comment = review_comment
        delete_request.delete_mode = mode.value if mode else None

        entry_id = delete_request.allocation_entry_id
        entry = await self.session.get(AllocationEntry, entry_id)
        details = {
            "delete_request_id": delete_request_id,
            "review_comment": review_comment,
        }
        if entry is not None:
            details.update(
                request_id=entry.request_id,
                request_type=entry.request_type,
                allocation_date=entry.allocation_date,
                resource_email=entry.resource_email,
                count=entry.count,
            )

        if action == ReviewAction.REJECT:
            if entry is not None:
                entry.has_pending_delete_request = False
            activity_type = ActivityType.DELETE_REJECTED
        else:
            details["delete_mode"] = mode.value
            activity_type = ActivityType.DELETE_APPROVED
            if entry is not None:
                if mode == DeleteMode.HARD:
                    await self.session.delete(entry)
                    entry = None
                else:
                    entry.is_deleted = True
                    entry.deleted_at = reviewed_at
                    entry.deleted_by = actor.email
                    entry.has_pending_delete_request = False

        await self.session.flush()
        await self.audit.record_activity(
            activity_type,
            actor,
            delete_request.client_type,
            entry_id,
            details=details,
        )
        logger.info(
            "Delete request %s %s by %s (mode=%s)",
            delete_request_id,
            to_status.value,
            actor.email,
            mode.value if mode else None,
        )
        return ReviewOutcome(
            delete_request=delete_request,
            action=action,
            allocation_entry_id=entry_id,
            entry=entry,
            delete_mode=mode,
        )

    async def get_delete_request(self, delete_request_id: UUID) -> DeleteRequest:
        delete_request = await self.session.get(DeleteRequest, delete_request_id)
        if delete_request is None:
            raise NotFoundError("Delete request", delete_request_id)
        return delete_request

    async def list_pending_delete_requests(
        self,
        client_type: ClientType | str | None = None,
    ) -> list[DeleteRequest]:
        """Pending requests, oldest first."""
        query = select(DeleteRequest).where(
            DeleteRequest.status == DeleteRequestStatus.PENDING.value
        )
        if client_type is not None:
            query = query.where(DeleteRequest.client_type == get_profile(client_type).client_type.value)
        query = query.order_by(DeleteRequest.requested_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _last_status(self, entry_id: UUID) -> DeleteRequestStatus:
        result = await self.session.execute(
            select(DeleteRequest.status)
            .where(DeleteRequest.allocation_entry_id == entry_id)
            .order_by(DeleteRequest.requested_at.desc())
            .limit(1)
        )
        status = result.scalar_one_or_none()
        return DeleteRequestStatus(status) if status else DeleteRequestStatus.NONE

    async def list_requests_for_entry(self, entry_id: UUID) -> list[DeleteRequest]:
        """All requests ever made for an entry, oldest first."""
        result = await self.session.execute(
            select(DeleteRequest)
            .where(DeleteRequest.allocation_entry_id == entry_id)
            .order_by(DeleteRequest.requested_at)
        )
        return list(result.scalars().all())
