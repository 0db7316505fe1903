"""Allocation ledger service - create, edit, query and lock entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.calculators.billing import billing_amount
from allocation_engine.calculators.rate_resolver import BillingRateResolver
from allocation_engine.clients import ClientProfile, ClientType, get_profile
from allocation_engine.config import get_settings
from allocation_engine.errors import NotFoundError, OwnershipError, StateError, ValidationError
from allocation_engine.models import AllocationEntry
from allocation_engine.services.actor import Actor
from allocation_engine.services.audit_service import ActivityType, AuditService, FieldChange
from allocation_engine.services.lock_rules import (
    LOCKED_MONTH_MESSAGE,
    Clock,
    ensure_creatable,
    ensure_mutable,
    is_entry_locked,
    is_month_locked,
    late_log_days,
    to_business_date,
    today_in_business_tz,
    utc_clock,
)
from allocation_engine.services.request_id_validator import RequestIdValidator

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Location, allocation date, and request type are required"
OWN_ENTRIES_ONLY_MESSAGE = "You can only edit your own entries"
LOG_FOR_SELF_MESSAGE = "You can only log entries for yourself"


@dataclass
class EntryFilters:
    """Filters for listing entries. Date bounds are inclusive."""

    resource_email: str | None = None
    resource_id: UUID | None = None
    location_id: UUID | None = None
    process_id: UUID | None = None
    request_type: str | None = None
    request_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    include_deleted: bool = False
    limit: int | None = None
    offset: int = 0


def coerce_date(value: Any, field_name: str = "allocation_date") -> date:
    """Accept a date or an ISO yyyy-mm-dd string."""
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field_name}: {value!r}")


def coerce_uuid(value: Any, field_name: str) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from None


def clean_text(value: Any, field_name: str) -> str:
    """Stripped string value; None and "" become ""."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    return value.strip()


def coerce_count(value: Any) -> int:
    """Positive integer count, rejecting bools, fractions and non-numbers."""
    if value is None or value == "":
        return 1
    if isinstance(value, bool):
        raise ValidationError("Count must be a positive integer")
    if isinstance(value, (float, Decimal)) and value != int(value):
        raise ValidationError("Count must be a positive integer")
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Count must be a positive integer") from None
    if count < 1:
        raise ValidationError("Count must be at least 1")
    return count


class AllocationLedgerService:
    """System of record for allocation entries.

    Operations:
    - create_entry: validate date, classification and request id, then log
    - edit_entry: field-level diff with audit record and billing recompute
    - get_entry / list_entries / list_late_logs: queries
    - lock_entry: one-way administrative freeze
    """

    # Fields a resource may change on their own entry
    RESOURCE_EDITABLE_FIELDS = (
        "request_id",
        "request_type",
        "requestor_type",
        "task_type",
        "count",
        "remark",
        "facility_name",
        "processing_time",
    )

    ADMIN_EDITABLE_FIELDS = RESOURCE_EDITABLE_FIELDS + (
        "location_id",
        "location_name",
        "process_id",
        "process_name",
        "allocation_date",
    )

    # A change to any of these re-resolves the billing rate
    RATE_FIELDS = frozenset(
        {"request_type", "requestor_type", "count", "location_id", "process_id", "process_name"}
    )

    TEXT_FIELDS = frozenset(
        {"remark", "facility_name", "processing_time", "location_name", "process_name"}
    )

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
        self.validator = RequestIdValidator(session)
        self.rate_resolver = BillingRateResolver(session)

    def today(self) -> date:
        """Current calendar date in the business timezone."""
        return today_in_business_tz(self.clock, self.business_timezone)

    def is_locked(self, entry: AllocationEntry) -> bool:
        """Effective lock state of an entry right now."""
        return is_entry_locked(entry.allocation_date, entry.is_locked, self.today())

    # ===== Create =====

    async def create_entry(
        self,
        client_type: ClientType | str,
        fields: Mapping[str, Any],
        actor: Actor,
        override_request_id_warning: bool = False,
    ) -> AllocationEntry:
        """Log a new allocation entry.

        Raises:
            ValidationError: Missing/invalid fields, future date or locked month
            ConflictWarning: Primary request type already used for the request id
        """
        profile = get_profile(client_type)
        today = self.today()

        location_id = coerce_uuid(fields.get("location_id"), "location_id")
        raw_date = fields.get("allocation_date")
        request_type = clean_text(fields.get("request_type"), "request_type")
        if location_id is None or not raw_date or not request_type:
            raise ValidationError(REQUIRED_FIELDS_MESSAGE)

        allocation_date = coerce_date(raw_date)
        ensure_creatable(allocation_date, today)

        resource_id, resource_name, resource_email = self._resolve_resource(fields, actor)

        requestor_type = clean_text(fields.get("requestor_type"), "requestor_type")
        task_type = clean_text(fields.get("task_type"), "task_type")
        self._validate_classification(profile, request_type, requestor_type, task_type)

        count = profile.normalize_count(coerce_count(fields.get("count", 1)))
        request_id = clean_text(fields.get("request_id"), "request_id")

        await self.validator.validate_classification(
            profile.client_type,
            request_id,
            request_type,
            override=override_request_id_warning,
        )

        process_name = clean_text(fields.get("process_name"), "process_name")
        rate = await self.rate_resolver.resolve_rate(
            profile.client_type,
            location_id=location_id,
            process_name=process_name,
            request_type=request_type,
            requestor_type=requestor_type,
        )

        logged_at = self.clock()
        days_late = late_log_days(allocation_date, to_business_date(logged_at, self.business_timezone))
        sr_no = await self._next_sr_no(profile.client_type.value, resource_email, allocation_date)

        entry = AllocationEntry(
            client_type=profile.client_type.value,
            sr_no=sr_no,
            allocation_date=allocation_date,
            logged_at=logged_at,
            is_late_log=days_late > 0,
            days_late=days_late,
            resource_id=resource_id,
            resource_name=resource_name or resource_email,
            resource_email=resource_email,
            location_id=location_id,
            location_name=clean_text(fields.get("location_name"), "location_name"),
            process_id=coerce_uuid(fields.get("process_id"), "process_id"),
            process_name=process_name,
            request_id=request_id,
            request_type=request_type,
            requestor_type=requestor_type,
            task_type=task_type,
            count=count,
            facility_name=clean_text(fields.get("facility_name"), "facility_name"),
            processing_time=clean_text(fields.get("processing_time"), "processing_time"),
            remark=clean_text(fields.get("remark"), "remark"),
            source=fields.get("source") or "direct_entry",
            billing_rate=rate,
            billing_amount=billing_amount(rate, count),
            billing_rate_at_logging=rate,
            created_at=logged_at,
        )
        self.session.add(entry)
        await self.session.flush()

        await self.audit.record_activity(
            ActivityType.CASE_LOGGED,
            actor,
            entry.client_type,
            entry.allocation_entry_id,
            details={
                "request_id": request_id,
                "request_type": request_type,
                "allocation_date": allocation_date,
                "count": count,
                "is_late_log": entry.is_late_log,
            },
        )
        logger.info(
            "Logged %s entry %s for %s on %s (sr_no=%s)",
            entry.client_type,
            entry.allocation_entry_id,
            resource_email,
            allocation_date,
            sr_no,
        )
        return entry

    # ===== Edit =====

    async def edit_entry(
        self,
        entry_id: UUID,
        updates: Mapping[str, Any],
        change_reason: str,
        actor: Actor,
        change_notes: str | None = None,
        override_request_id_warning: bool = False,
    ) -> AllocationEntry:
        """Apply a partial update to an entry.

        Only fields whose value actually changes are recorded. An update with
        no effective change succeeds without touching the entry or the audit
        trail.

        Raises:
            ValidationError: Missing change reason, non-editable field, bad value
            NotFoundError: Entry does not exist
            OwnershipError: Resource editing someone else's entry
            StateError: Entry is deleted or locked
            ConflictWarning: Primary request type already used for the request id
        """
        if not (change_reason or "").strip():
            raise ValidationError("Change reason is required")

        entry = await self.get_entry(entry_id)
        if not actor.can_act_for(entry.resource_id):
            raise OwnershipError(OWN_ENTRIES_ONLY_MESSAGE)
        if entry.is_deleted:
            raise StateError("Cannot edit a deleted entry")

        today = self.today()
        ensure_mutable(entry.allocation_date, entry.is_locked, today)

        profile = get_profile(entry.client_type)
        allowed = self.ADMIN_EDITABLE_FIELDS if actor.is_admin else self.RESOURCE_EDITABLE_FIELDS

        changes: list[FieldChange] = []
        for field_name, raw_value in updates.items():
            if field_name not in allowed:
                raise ValidationError(f"Field '{field_name}' cannot be edited")
            new_value = self._normalize_update(profile, field_name, raw_value)
            old_value = getattr(entry, field_name)
            if new_value != old_value:
                changes.append(FieldChange(field_name, old_value, new_value))

        if not changes:
            return entry

        proposed = {change.field: change.new_value for change in changes}
        self._validate_classification(
            profile,
            proposed.get("request_type", entry.request_type),
            proposed.get("requestor_type", entry.requestor_type),
            proposed.get("task_type", entry.task_type),
        )

        if "allocation_date" in proposed and is_month_locked(proposed["allocation_date"], today):
            raise ValidationError(LOCKED_MONTH_MESSAGE)

        if "request_type" in proposed or "request_id" in proposed:
            await self.validator.validate_classification(
                profile.client_type,
                proposed.get("request_id", entry.request_id),
                proposed.get("request_type", entry.request_type),
                override=override_request_id_warning,
                exclude_entry_id=entry.allocation_entry_id,
            )

        for change in changes:
            setattr(entry, change.field, change.new_value)

        if "allocation_date" in proposed:
            logged_on = to_business_date(entry.logged_at, self.business_timezone)
            entry.days_late = late_log_days(entry.allocation_date, logged_on)
            entry.is_late_log = entry.days_late > 0

        if self.RATE_FIELDS.intersection(proposed):
            rate = await self.rate_resolver.resolve_rate_for_entry(entry)
            entry.billing_rate = rate
            entry.billing_amount = billing_amount(rate, entry.count)

        entry.edit_count += 1
        entry.last_edited_at = self.clock()
        await self.session.flush()

        await self.audit.record_edit(
            entry.allocation_entry_id,
            actor,
            changes,
            change_reason.strip(),
            change_notes,
        )
        await self.audit.record_activity(
            ActivityType.CASE_UPDATED,
            actor,
            entry.client_type,
            entry.allocation_entry_id,
            details={
                "fields": [change.field for change in changes],
                "edit_count": entry.edit_count,
                "change_reason": change_reason.strip(),
            },
        )
        logger.info(
            "Edited entry %s (%s) by %s",
            entry.allocation_entry_id,
            ", ".join(change.field for change in changes),
            actor.email,
        )
        return entry

    # ===== Queries =====

    async def get_entry(self, entry_id: UUID) -> AllocationEntry:
        """Load an entry (including soft-deleted ones).

        Raises:
            NotFoundError: No such entry, or it was hard-deleted
        """
        entry = await self.session.get(AllocationEntry, entry_id)
        if entry is None:
            raise NotFoundError("Allocation entry", entry_id)
        return entry

    async def list_entries(
        self,
        client_type: ClientType | str,
        filters: EntryFilters | None = None,
    ) -> list[AllocationEntry]:
        """List entries for a client, newest allocation date first."""
        profile = get_profile(client_type)
        filters = filters or EntryFilters()

        query = select(AllocationEntry).where(AllocationEntry.client_type == profile.client_type.value)
        query = self._apply_filters(query, filters)
        query = query.order_by(
            AllocationEntry.allocation_date.desc(),
            AllocationEntry.resource_email,
            AllocationEntry.sr_no,
        )
        if filters.offset:
            query = query.offset(filters.offset)
        if filters.limit is not None:
            query = query.limit(filters.limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_late_logs(
        self,
        client_type: ClientType | str,
        filters: EntryFilters | None = None,
    ) -> list[AllocationEntry]:
        """Entries logged on a later calendar day than their allocation date."""
        entries = await self.list_entries(client_type, filters)
        return [entry for entry in entries if entry.is_late_log]

    # ===== Lock =====

    async def lock_entry(
        self,
        entry_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> AllocationEntry:
        """Administratively freeze an entry. Idempotent; there is no unlock."""
        if not actor.is_admin:
            raise ValidationError("Only admins can lock entries")

        entry = await self.get_entry(entry_id)
        if entry.is_locked:
            return entry

        entry.is_locked = True
        entry.locked_at = self.clock()
        entry.locked_reason = reason or "admin_lock"
        await self.session.flush()

        await self.audit.record_activity(
            ActivityType.CASE_LOCKED,
            actor,
            entry.client_type,
            entry.allocation_entry_id,
            details={"reason": entry.locked_reason},
        )
        logger.info("Locked entry %s by %s", entry.allocation_entry_id, actor.email)
        return entry

    # ===== Helpers =====

    def _validate_classification(
        self,
        profile: ClientProfile,
        request_type: str,
        requestor_type: str,
        task_type: str,
    ) -> None:
        if not profile.validate_request_type(request_type):
            raise ValidationError(
                f"Invalid request type '{request_type}' for {profile.display_name}"
            )
        if not profile.validate_requestor_type(requestor_type):
            raise ValidationError(
                f"Invalid requestor type '{requestor_type}' for {profile.display_name}"
            )
        if not profile.validate_task_type(task_type):
            raise ValidationError(f"Invalid task type '{task_type}' for {profile.display_name}")

    def _normalize_update(self, profile: ClientProfile, field_name: str, value: Any) -> Any:
        if field_name == "count":
            return profile.normalize_count(coerce_count(value))
        if field_name == "allocation_date":
            return coerce_date(value)
        if field_name in ("location_id", "process_id"):
            coerced = coerce_uuid(value, field_name)
            if field_name == "location_id" and coerced is None:
                raise ValidationError("location_id cannot be empty")
            return coerced
        if field_name == "request_type":
            normalized = clean_text(value, field_name)
            if not normalized:
                raise ValidationError("Request type cannot be empty")
            return normalized
        if field_name in ("request_id", "requestor_type", "task_type") or field_name in self.TEXT_FIELDS:
            return clean_text(value, field_name)
        return value

    def _resolve_resource(
        self, fields: Mapping[str, Any], actor: Actor
    ) -> tuple[UUID | None, str, str]:
        """Whose entry this is. Only admins may log on behalf of someone else."""
        requested_id = coerce_uuid(fields.get("resource_id"), "resource_id")
        requested_name = clean_text(fields.get("resource_name"), "resource_name")
        requested_email = clean_text(fields.get("resource_email"), "resource_email").lower()

        if actor.is_admin:
            resource_id = requested_id or actor.id
            resource_name = requested_name or actor.name or ""
            resource_email = requested_email or actor.email
        else:
            if requested_id is not None and requested_id != actor.id:
                raise ValidationError(LOG_FOR_SELF_MESSAGE)
            if requested_email and requested_email != actor.email:
                raise ValidationError(LOG_FOR_SELF_MESSAGE)
            resource_id = actor.id
            resource_name = actor.name or ""
            resource_email = actor.email

        if resource_id is None or not resource_email:
            raise ValidationError("Resource identity is required")
        return resource_id, resource_name.strip(), resource_email

    def _apply_filters(self, query, filters: EntryFilters):
        if not filters.include_deleted:
            query = query.where(AllocationEntry.is_deleted.is_(False))
        if filters.resource_email:
            query = query.where(
                AllocationEntry.resource_email == filters.resource_email.strip().lower()
            )
        if filters.resource_id is not None:
            query = query.where(AllocationEntry.resource_id == filters.resource_id)
        if filters.location_id is not None:
            query = query.where(AllocationEntry.location_id == filters.location_id)
        if filters.process_id is not None:
            query = query.where(AllocationEntry.process_id == filters.process_id)
        if filters.request_type:
            query = query.where(AllocationEntry.request_type == filters.request_type)
        if filters.request_id:
            query = query.where(AllocationEntry.request_id == filters.request_id.strip())
        if filters.date_from is not None:
            query = query.where(AllocationEntry.allocation_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(AllocationEntry.allocation_date <= filters.date_to)
        return query

    async def _next_sr_no(self, client_type: str, resource_email: str, allocation_date: date) -> int:
        """Next per-resource, per-day serial number."""
        result = await self.session.execute(
            select(func.max(AllocationEntry.sr_no)).where(
                AllocationEntry.client_type == client_type,
                AllocationEntry.resource_email == resource_email,
                AllocationEntry.allocation_date == allocation_date,
                AllocationEntry.is_deleted.is_(False),
            )
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1
