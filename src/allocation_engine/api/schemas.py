"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Allocation entry schemas
# ============================================================================


class EntryCreate(BaseModel):
    """Schema for logging a new allocation entry."""

    location_id: UUID
    location_name: str = ""
    process_id: UUID | None = None
    process_name: str = ""
    allocation_date: date
    request_id: str = ""
    request_type: str
    requestor_type: str = ""
    task_type: str = ""
    count: int = Field(default=1, ge=1)
    facility_name: str = ""
    processing_time: str = ""
    remark: str = ""
    source: Literal["direct_entry", "assignment"] = "direct_entry"

    # Admins may log on behalf of a resource
    resource_id: UUID | None = None
    resource_name: str | None = None
    resource_email: str | None = None

    override_request_id_warning: bool = False


class EntryUpdate(BaseModel):
    """Partial update; `updates` keys are applied in the order given."""

    updates: dict[str, Any]
    change_reason: str = Field(min_length=1)
    change_notes: str | None = None
    override_request_id_warning: bool = False


class EntryResponse(BaseModel):
    """Schema for allocation entry response."""

    model_config = ConfigDict(from_attributes=True)

    allocation_entry_id: UUID
    client_type: str
    sr_no: int
    allocation_date: date
    logged_at: datetime
    is_late_log: bool
    days_late: int
    resource_id: UUID
    resource_name: str
    resource_email: str
    location_id: UUID
    location_name: str
    process_id: UUID | None = None
    process_name: str
    request_id: str
    request_type: str
    requestor_type: str
    task_type: str
    count: int
    facility_name: str
    processing_time: str
    remark: str
    source: str
    billing_rate: Decimal
    billing_amount: Decimal
    billing_rate_at_logging: Decimal
    # Effective lock (explicit flag or closed month)
    is_locked: bool
    locked_at: datetime | None = None
    locked_reason: str | None = None
    is_deleted: bool
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    edit_count: int
    last_edited_at: datetime | None = None
    has_pending_delete_request: bool


class EntryListResponse(BaseModel):
    """Schema for listing entries."""

    items: list[EntryResponse]
    total: int


class LockRequest(BaseModel):
    reason: str | None = None


# ============================================================================
# Audit schemas
# ============================================================================


class FieldChangeResponse(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class EditHistoryResponse(BaseModel):
    """Schema for one edit history record."""

    model_config = ConfigDict(from_attributes=True)

    edit_history_id: UUID
    allocation_entry_id: UUID
    sequence: int
    edited_by_id: UUID | None = None
    edited_by_name: str | None = None
    edited_by_email: str | None = None
    edited_by_role: str
    edited_at: datetime
    change_reason: str
    change_notes: str | None = None
    fields_changed: list[FieldChangeResponse]


# ============================================================================
# Request ID schemas
# ============================================================================


class ExistingEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_entry_id: UUID
    request_type: str
    allocation_date: date
    resource_name: str
    resource_email: str
    location_name: str


class RequestIdCheckResponse(BaseModel):
    """Schema for request id lookup."""

    model_config = ConfigDict(from_attributes=True)

    request_id: str
    exists: bool
    has_primary: bool
    suggested_type: str
    existing_entries: list[ExistingEntryResponse]
    total_entries: int


# ============================================================================
# Delete request schemas
# ============================================================================


class DeleteRequestCreate(BaseModel):
    reason: str = Field(min_length=1)


class DeleteRequestResponse(BaseModel):
    """Schema for delete request response."""

    model_config = ConfigDict(from_attributes=True)

    delete_request_id: UUID
    allocation_entry_id: UUID
    client_type: str
    requested_by_id: UUID | None = None
    requested_by_name: str | None = None
    requested_by_email: str | None = None
    requested_at: datetime
    delete_reason: str
    status: str
    reviewed_by_id: UUID | None = None
    reviewed_by_email: str | None = None
    reviewed_at: datetime | None = None
    review_comment: str | None = None
    delete_mode: str | None = None


class DeleteRequestListResponse(BaseModel):
    items: list[DeleteRequestResponse]
    total: int


class ReviewRequest(BaseModel):
    """Admin decision on a pending delete request."""

    action: Literal["approve", "reject"]
    delete_mode: Literal["soft", "hard"] | None = None
    comment: str | None = None


class ReviewResponse(BaseModel):
    delete_request: DeleteRequestResponse
    entry_removed: bool
    entry: EntryResponse | None = None


# ============================================================================
# Payout and billing schemas
# ============================================================================


class SlabSchema(BaseModel):
    """Payout slab over cases per hour; `max` None means unbounded."""

    min: Decimal
    max: Decimal | None = None
    rate: Decimal
    label: str = ""


class PayoutRequest(BaseModel):
    """Schema for computing payouts over a period."""

    client_types: list[Literal["mro", "verisma", "datavant"]] = Field(min_length=1)
    period_start: date
    period_end: date
    slabs: list[SlabSchema] | None = None
    resource_email: str | None = None
    complete_logging_process_ids: list[UUID] | None = None
    processing_rates: dict[UUID, Decimal] = Field(default_factory=dict)
    include_working_days_left: bool = False


class DailyBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_date: date
    logging_cases: int
    processing_cases: int
    total_cases: int
    is_weekend: bool


class ResourcePayoutResponse(BaseModel):
    """Schema for one resource's payout."""

    model_config = ConfigDict(from_attributes=True)

    resource_email: str
    resource_name: str
    total_cases: int
    logging_cases: int
    processing_cases: int
    complete_logging_cases: int
    weekday_days_worked: int
    total_hours: int
    avg_cases_per_hour: Decimal
    slab_rate: Decimal
    slab_label: str
    basic_payout: Decimal
    bonus_rate: Decimal
    complete_logging_bonus: Decimal
    processing_payout: Decimal
    total_payout: Decimal
    to_achieve: dict[int, int]
    daily_breakdown: list[DailyBreakdownResponse]
    working_days_left: int | None = None


class PayoutSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_resources: int
    total_cases: int
    total_logging_cases: int
    total_processing_cases: int
    total_complete_logging_cases: int
    total_basic_payout: Decimal
    total_bonus: Decimal
    total_processing_payout: Decimal
    total_payout: Decimal
    working_days_left: int | None = None


class PayoutResponse(BaseModel):
    results: list[ResourcePayoutResponse]
    summary: PayoutSummaryResponse


class BillingRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    client_type: str
    resource_email: str
    resource_name: str
    location_name: str
    request_type: str
    cases: int
    total_amount: Decimal


class BillingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rows: list[BillingRowResponse]
    total_cases: int
    total_amount: Decimal


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str
    suggested_type: str | None = None
