"""Allocation entry, delete request and edit history models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from allocation_engine.models.base import Base, JSONType, TimestampMixin, utcnow


# ===== Allocation Entries =====


class AllocationEntry(Base, TimestampMixin):
    """One unit-of-work record logged by a resource for a location/process on a date.

    Lock state is never stored as a transition; see services.lock_rules.
    `is_locked` here is only the explicit administrative freeze.
    """

    __tablename__ = "allocation_entry"

    allocation_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    client_type: Mapped[str] = mapped_column(String, nullable=False)
    sr_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Dates
    allocation_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_late_log: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    days_late: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Resource (denormalized at creation)
    resource_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    resource_name: Mapped[str] = mapped_column(String, nullable=False)
    resource_email: Mapped[str] = mapped_column(String, nullable=False)

    # Hierarchy
    location_id: Mapped[UUID] = mapped_column(nullable=False)
    location_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    process_id: Mapped[UUID | None] = mapped_column(nullable=True)
    process_name: Mapped[str] = mapped_column(String, nullable=False, default="")

    # Classification
    request_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    request_type: Mapped[str] = mapped_column(String, nullable=False)
    requestor_type: Mapped[str] = mapped_column(String, nullable=False, default="")
    task_type: Mapped[str] = mapped_column(String, nullable=False, default="")
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Free text
    facility_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    processing_time: Mapped[str] = mapped_column(String, nullable=False, default="")
    remark: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String, nullable=False, default="direct_entry")

    # Billing
    billing_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    billing_amount: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    billing_rate_at_logging: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), nullable=False, default=Decimal("0")
    )

    # Administrative lock
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_reason: Mapped[str | None] = mapped_column(String, nullable=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String, nullable=True)

    # Edits
    edit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Written together with the DeleteRequest row it mirrors
    has_pending_delete_request: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )

    __table_args__ = (
        CheckConstraint("count >= 1", name="allocation_entry_count_positive"),
        CheckConstraint(
            "client_type IN ('mro', 'verisma', 'datavant')",
            name="allocation_entry_client_type_check",
        ),
        CheckConstraint(
            "source IN ('direct_entry', 'assignment')",
            name="allocation_entry_source_check",
        ),
        # Not unique: request ids repeat for secondary entries
        Index("ix_allocation_entry_client_request", "client_type", "request_id"),
        Index("ix_allocation_entry_resource_date", "resource_email", "allocation_date"),
    )


# ===== Delete Requests =====


class DeleteRequest(Base, TimestampMixin):
    """Requestor-initiated deletion awaiting (or resolved by) admin review.

    Keyed by entry id without a foreign key so resolved requests outlive a
    hard delete of the entry.
    """

    __tablename__ = "delete_request"

    delete_request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    allocation_entry_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    client_type: Mapped[str] = mapped_column(String, nullable=False)

    requested_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    requested_by_name: Mapped[str | None] = mapped_column(String, nullable=True)
    requested_by_email: Mapped[str | None] = mapped_column(String, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    delete_reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    reviewed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_by_email: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    delete_mode: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="delete_request_status_check",
        ),
        CheckConstraint(
            "delete_mode IS NULL OR delete_mode IN ('soft', 'hard')",
            name="delete_request_mode_check",
        ),
    )

    @property
    def is_pending(self) -> bool:
        """Check if the request still awaits review."""
        return self.status == "pending"


# ===== Edit History =====


class EditHistoryRecord(Base):
    """Append-only record of one successful edit."""

    __tablename__ = "edit_history"

    edit_history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    allocation_entry_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    edited_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    edited_by_name: Mapped[str | None] = mapped_column(String, nullable=True)
    edited_by_email: Mapped[str | None] = mapped_column(String, nullable=True)
    edited_by_role: Mapped[str] = mapped_column(String, nullable=False, default="resource")
    edited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    change_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fields_changed: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("allocation_entry_id", "sequence", name="edit_history_entry_sequence_unique"),
        CheckConstraint(
            "edited_by_role IN ('resource', 'admin')",
            name="edit_history_role_check",
        ),
    )

    @property
    def changed_field_names(self) -> list[str]:
        """Names of the fields touched by this edit, in diff order."""
        return [change["field"] for change in self.fields_changed]
