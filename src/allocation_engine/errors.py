"""Error taxonomy for ledger, workflow and payout operations.

All errors are local and synchronous. None of them is transient, so callers
should surface the message rather than retry.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class AllocationError(Exception):
    """Base class for all allocation engine errors."""

    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(AllocationError):
    """User-correctable input problem (missing field, future date, locked month...)."""

    status_code = 400


class ConflictWarning(AllocationError):
    """Advisory request-id collision.

    The caller may resubmit with an explicit override to proceed anyway.
    """

    status_code = 409

    def __init__(
        self,
        request_id: str,
        suggested_type: str,
        primary_type: str,
        existing_entries: list[dict[str, Any]] | None = None,
    ):
        self.request_id = request_id
        self.suggested_type = suggested_type
        self.primary_type = primary_type
        self.existing_entries = existing_entries or []
        super().__init__(
            f'Request ID "{request_id}" already has a "{primary_type}" entry. '
            f'Use "{suggested_type}" instead.'
        )


class NotFoundError(AllocationError):
    """Referenced entry or delete request does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StateError(AllocationError):
    """Operation not allowed in the current lifecycle state."""

    status_code = 409


class EntryLockedError(StateError):
    """Entry's month has closed or the entry was administratively locked."""

    status_code = 403

    def __init__(self, message: str = "This entry is locked and cannot be modified"):
        super().__init__(message)


class OwnershipError(StateError):
    """Resource acting on an entry that belongs to someone else."""

    status_code = 403


class InvalidTransitionError(StateError):
    """Raised when an invalid delete-request transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidSlabTableError(ValidationError):
    """Payout slab table is not an ordered partition of [0, inf)."""
