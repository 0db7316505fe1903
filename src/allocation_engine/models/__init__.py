"""ORM models."""

from allocation_engine.models.allocation import AllocationEntry, DeleteRequest, EditHistoryRecord
from allocation_engine.models.audit import ActivityLog
from allocation_engine.models.base import Base, TimestampMixin
from allocation_engine.models.billing import BillingRate

__all__ = [
    "ActivityLog",
    "AllocationEntry",
    "Base",
    "BillingRate",
    "DeleteRequest",
    "EditHistoryRecord",
    "TimestampMixin",
]
