"""Delete request state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from allocation_engine.errors import InvalidTransitionError


class DeleteRequestStatus(str, Enum):
    """Delete request status values.

    NONE is the entry-side state when no request is open; it is never stored
    on a DeleteRequest row.
    """

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeleteMode(str, Enum):
    """How an approved deletion is applied."""

    SOFT = "soft"
    HARD = "hard"


class ReviewAction(str, Enum):
    """Admin decisions on a pending request."""

    APPROVE = "approve"
    REJECT = "reject"


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class DeleteRequestStateMachine:
    """State machine for delete request transitions.

    Allowed transitions:
    - none → pending (resource submits)
    - pending → approved
    - pending → rejected
    - rejected → pending (resubmission, as a new request)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        DeleteRequestStatus.NONE: [DeleteRequestStatus.PENDING],
        DeleteRequestStatus.PENDING: [DeleteRequestStatus.APPROVED, DeleteRequestStatus.REJECTED],
        DeleteRequestStatus.APPROVED: [],  # Terminal state
        DeleteRequestStatus.REJECTED: [DeleteRequestStatus.PENDING],
    }

    RESOLVED = {
        DeleteRequestStatus.APPROVED,
        DeleteRequestStatus.REJECTED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = None
            if cls.is_resolved(from_status):
                reason = f"delete request already {_value(from_status)}"
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def is_resolved(cls, status: str) -> bool:
        return status in cls.RESOLVED

    @classmethod
    def target_status(cls, action: ReviewAction | str) -> DeleteRequestStatus:
        """Map a review action to the status it produces."""
        if ReviewAction(action) == ReviewAction.APPROVE:
            return DeleteRequestStatus.APPROVED
        return DeleteRequestStatus.REJECTED
