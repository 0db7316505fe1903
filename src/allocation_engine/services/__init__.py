"""Allocation engine services."""

from allocation_engine.services.actor import Actor, ActorRole
from allocation_engine.services.audit_service import ActivityType, AuditService
from allocation_engine.services.delete_request_service import DeleteRequestService, ReviewOutcome
from allocation_engine.services.ledger_service import AllocationLedgerService, EntryFilters
from allocation_engine.services.payout_service import PayoutService
from allocation_engine.services.request_id_validator import RequestIdCheck, RequestIdValidator
from allocation_engine.services.state_machine import (
    DeleteMode,
    DeleteRequestStateMachine,
    DeleteRequestStatus,
    ReviewAction,
)

__all__ = [
    "ActivityType",
    "Actor",
    "ActorRole",
    "AllocationLedgerService",
    "AuditService",
    "DeleteMode",
    "DeleteRequestService",
    "DeleteRequestStateMachine",
    "DeleteRequestStatus",
    "EntryFilters",
    "PayoutService",
    "RequestIdCheck",
    "RequestIdValidator",
    "ReviewAction",
    "ReviewOutcome",
]
