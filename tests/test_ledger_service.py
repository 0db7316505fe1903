"""Tests for allocation ledger service."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from allocation_engine.errors import (
    ConflictWarning,
    EntryLockedError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from allocation_engine.models import BillingRate
from allocation_engine.services.audit_service import ActivityType
from allocation_engine.services.ledger_service import (
    LOG_FOR_SELF_MESSAGE,
    OWN_ENTRIES_ONLY_MESSAGE,
    REQUIRED_FIELDS_MESSAGE,
    EntryFilters,
    coerce_count,
)
from allocation_engine.services.lock_rules import FUTURE_DATE_MESSAGE, LOCKED_MONTH_MESSAGE


@pytest.mark.asyncio
class TestCreateEntry:
    """Test logging new entries."""

    async def test_create_mro_entry(self, ledger, audit, resource_actor, make_fields):
        """Test a basic MRO logging entry."""
        entry = await ledger.create_entry("mro", make_fields(request_id=" REQ-1 "), resource_actor)

        assert entry.allocation_entry_id is not None
        assert entry.client_type == "mro"
        assert entry.sr_no == 1
        assert entry.request_id == "REQ-1"
        assert entry.resource_email == "alice@example.com"
        assert entry.resource_id == resource_actor.id
        assert entry.is_late_log is False
        assert entry.days_late == 0
        assert entry.billing_rate == Decimal("1.08")
        assert entry.billing_amount == Decimal("1.08")
        assert entry.billing_rate_at_logging == Decimal("1.08")
        assert entry.edit_count == 0

        [event] = await audit.get_activity(entry_id=entry.allocation_entry_id)
        assert event.activity_type == ActivityType.CASE_LOGGED.value
        assert event.details["request_id"] == "REQ-1"

    async def test_required_fields(self, ledger, resource_actor, make_fields):
        """Location, date and request type are required."""
        for missing in ("location_id", "allocation_date", "request_type"):
            with pytest.raises(ValidationError) as exc_info:
                await ledger.create_entry("mro", make_fields(**{missing: None}), resource_actor)
            assert exc_info.value.message == REQUIRED_FIELDS_MESSAGE

    async def test_future_date_rejected(self, ledger, resource_actor, make_fields):
        """Tomorrow can't be logged."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.create_entry(
                "mro", make_fields(allocation_date=date(2025, 3, 15)), resource_actor
            )

        assert exc_info.value.message == FUTURE_DATE_MESSAGE

    async def test_locked_month_rejected(self, ledger, resource_actor, make_fields):
        """Elapsed months can't be logged."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.create_entry(
                "mro", make_fields(allocation_date="2025-02-28"), resource_actor
            )

        assert exc_info.value.message == LOCKED_MONTH_MESSAGE

    async def test_invalid_request_type(self, ledger, resource_actor, make_fields):
        """Request types are validated per client."""
        with pytest.raises(ValidationError, match="Invalid request type"):
            await ledger.create_entry("mro", make_fields(request_type="Key"), resource_actor)

        entry = await ledger.create_entry(
            "verisma", make_fields(request_type="Key", process_name=""), resource_actor
        )
        assert entry.request_type == "Key"

    async def test_invalid_requestor_type(self, ledger, resource_actor, make_fields):
        """Requestor types are validated per client."""
        with pytest.raises(ValidationError, match="Invalid requestor type"):
            await ledger.create_entry("verisma", make_fields(requestor_type="Manual"), resource_actor)

    async def test_unknown_client(self, ledger, resource_actor, make_fields):
        """Unknown client types are rejected."""
        with pytest.raises(ValidationError, match="Unknown client type"):
            await ledger.create_entry("acme", make_fields(), resource_actor)

    async def test_mro_count_is_single(self, ledger, resource_actor, make_fields):
        """MRO entries always store a count of 1."""
        entry = await ledger.create_entry("mro", make_fields(count=5), resource_actor)

        assert entry.count == 1

    async def test_multi_count_client(self, ledger, resource_actor, make_fields):
        """Verisma entries keep their count."""
        entry = await ledger.create_entry("verisma", make_fields(count="3"), resource_actor)

        assert entry.count == 3

    async def test_count_must_be_positive(self, ledger, resource_actor, make_fields):
        """Zero and fractional counts are rejected."""
        with pytest.raises(ValidationError, match="at least 1"):
            await ledger.create_entry("verisma", make_fields(count=0), resource_actor)
        with pytest.raises(ValidationError, match="positive integer"):
            coerce_count(2.5)

    async def test_sr_no_per_resource_per_day(
        self, ledger, resource_actor, other_resource, make_fields
    ):
        """Serial numbers count per resource and date."""
        first = await ledger.create_entry("mro", make_fields(), resource_actor)
        second = await ledger.create_entry("mro", make_fields(), resource_actor)
        other = await ledger.create_entry("mro", make_fields(), other_resource)
        yesterday = await ledger.create_entry(
            "mro", make_fields(allocation_date=date(2025, 3, 13)), resource_actor
        )

        assert (first.sr_no, second.sr_no, other.sr_no, yesterday.sr_no) == (1, 2, 1, 1)

    async def test_late_log(self, ledger, resource_actor, make_fields):
        """Entries logged after their allocation date are flagged late."""
        entry = await ledger.create_entry(
            "mro", make_fields(allocation_date=date(2025, 3, 10)), resource_actor
        )
        await ledger.create_entry("mro", make_fields(), resource_actor)

        assert entry.is_late_log is True
        assert entry.days_late == 4

        late = await ledger.list_late_logs("mro")
        assert [e.allocation_entry_id for e in late] == [entry.allocation_entry_id]

    async def test_late_log_uses_business_timezone(self, ledger, clock, resource_actor, make_fields):
        """Logging at 01:00 UTC is still the previous day in New York."""
        clock.set(datetime(2025, 3, 15, 1, 0, tzinfo=timezone.utc))

        entry = await ledger.create_entry("mro", make_fields(), resource_actor)

        assert entry.is_late_log is False

    async def test_duplicate_primary_conflict(self, ledger, mro_entry, resource_actor, make_fields):
        """A second primary entry for a request id raises a conflict."""
        with pytest.raises(ConflictWarning) as exc_info:
            await ledger.create_entry("mro", make_fields(request_id="REQ-100"), resource_actor)
        assert exc_info.value.suggested_type == "Follow up"

        follow_up = await ledger.create_entry(
            "mro", make_fields(request_id="REQ-100", request_type="Follow up"), resource_actor
        )
        overridden = await ledger.create_entry(
            "mro",
            make_fields(request_id="REQ-100"),
            resource_actor,
            override_request_id_warning=True,
        )

        assert follow_up.request_type == "Follow up"
        assert overridden.request_type == "New Request"

    async def test_resource_logs_only_for_self(
        self, ledger, resource_actor, other_resource, make_fields
    ):
        """Resources can't log under another resource's identity."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.create_entry(
                "verisma",
                make_fields(resource_id=other_resource.id, resource_email=other_resource.email),
                resource_actor,
            )
        assert exc_info.value.message == LOG_FOR_SELF_MESSAGE

        with pytest.raises(ValidationError, match="for yourself"):
            await ledger.create_entry(
                "verisma", make_fields(resource_email="bob@example.com"), resource_actor
            )

        entry = await ledger.create_entry(
            "verisma",
            make_fields(resource_id=resource_actor.id, resource_name="Someone Else"),
            resource_actor,
        )
        assert entry.resource_email == "alice@example.com"
        assert entry.resource_name == "Alice Resource"

    async def test_admin_logs_on_behalf(self, ledger, admin_actor, other_resource, make_fields):
        """Admins may log entries for a resource."""
        entry = await ledger.create_entry(
            "mro",
            make_fields(
                resource_id=other_resource.id,
                resource_name="Bob Resource",
                resource_email="Bob@Example.com",
            ),
            admin_actor,
        )

        assert entry.resource_id == other_resource.id
        assert entry.resource_email == "bob@example.com"

    async def test_non_string_text_rejected(self, ledger, resource_actor, make_fields):
        """Text and classification fields must be strings."""
        with pytest.raises(ValidationError, match="remark must be a string"):
            await ledger.create_entry("mro", make_fields(remark=5), resource_actor)
        with pytest.raises(ValidationError, match="request_type must be a string"):
            await ledger.create_entry("mro", make_fields(request_type=["New Request"]), resource_actor)

    async def test_configured_billing_rate(self, session, ledger, resource_actor, make_fields):
        """Billing amount is rate x count at logging time."""
        session.add(BillingRate(client_type="verisma", rate=Decimal("2.00")))
        await session.flush()

        entry = await ledger.create_entry("verisma", make_fields(count=3), resource_actor)

        assert entry.billing_rate == Decimal("2.00")
        assert entry.billing_amount == Decimal("6.00")


@pytest.mark.asyncio
class TestEditEntry:
    """Test editing with field-level audit."""

    async def test_edit_records_diff(self, session, ledger, audit, resource_actor, make_fields):
        """Only changed fields are recorded, in update order."""
        session.add(BillingRate(client_type="verisma", rate=Decimal("2.00")))
        await session.flush()
        entry = await ledger.create_entry(
            "verisma", make_fields(count=3, remark="first"), resource_actor
        )

        edited = await ledger.edit_entry(
            entry.allocation_entry_id,
            {"remark": "second", "count": 5, "request_type": "New Request"},
            "Miscounted",
            resource_actor,
            change_notes="Re-checked the batch",
        )

        assert edited.count == 5
        assert edited.remark == "second"
        assert edited.edit_count == 1
        assert edited.last_edited_at is not None
        assert edited.billing_amount == Decimal("10.00")
        assert edited.billing_rate_at_logging == Decimal("2.00")

        [record] = await audit.get_edit_history(entry.allocation_entry_id)
        assert record.sequence == 1
        assert record.change_reason == "Miscounted"
        assert record.change_notes == "Re-checked the batch"
        assert record.edited_by_role == "resource"
        assert record.changed_field_names == ["remark", "count"]
        assert record.fields_changed[1] == {"field": "count", "old_value": 3, "new_value": 5}

        updates = await audit.get_activity(
            entry_id=entry.allocation_entry_id, activity_type=ActivityType.CASE_UPDATED
        )
        assert len(updates) == 1

    async def test_history_sequence_increments(self, ledger, audit, resource_actor, mro_entry):
        """Each edit appends one record."""
        await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": "a"}, "r1", resource_actor)
        await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": "b"}, "r2", resource_actor)

        history = await audit.get_edit_history(mro_entry.allocation_entry_id)

        assert [h.sequence for h in history] == [1, 2]
        assert history[1].fields_changed == [{"field": "remark", "old_value": "a", "new_value": "b"}]
        assert mro_entry.edit_count == 2

    async def test_no_op_edit(self, ledger, audit, resource_actor, mro_entry):
        """An edit that changes nothing leaves no trace."""
        result = await ledger.edit_entry(
            mro_entry.allocation_entry_id,
            {"request_id": "REQ-100", "remark": ""},
            "Nothing really",
            resource_actor,
        )

        assert result.edit_count == 0
        assert await audit.get_edit_history(mro_entry.allocation_entry_id) == []

    async def test_change_reason_required(self, ledger, resource_actor, mro_entry):
        """Edits need a reason."""
        with pytest.raises(ValidationError, match="Change reason is required"):
            await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": "x"}, "  ", resource_actor)

    async def test_resource_cannot_move_date(self, ledger, resource_actor, mro_entry):
        """Allocation date is admin-only."""
        with pytest.raises(ValidationError, match="cannot be edited"):
            await ledger.edit_entry(
                mro_entry.allocation_entry_id,
                {"allocation_date": date(2025, 3, 12)},
                "Wrong day",
                resource_actor,
            )

    async def test_admin_moves_date(self, ledger, admin_actor, mro_entry):
        """Admins may move the date within an open month, recomputing lateness."""
        edited = await ledger.edit_entry(
            mro_entry.allocation_entry_id,
            {"allocation_date": "2025-03-12"},
            "Wrong day",
            admin_actor,
        )

        assert edited.allocation_date == date(2025, 3, 12)
        assert edited.is_late_log is True
        assert edited.days_late == 2

    async def test_admin_cannot_move_into_locked_month(self, ledger, admin_actor, mro_entry):
        """Moving an entry into a closed month is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.edit_entry(
                mro_entry.allocation_entry_id,
                {"allocation_date": date(2025, 2, 28)},
                "Wrong month",
                admin_actor,
            )

        assert exc_info.value.message == LOCKED_MONTH_MESSAGE

    async def test_edit_after_month_end(self, ledger, clock, resource_actor, mro_entry):
        """Entries freeze once their month ends."""
        clock.set(datetime(2025, 4, 1, 12, 0, tzinfo=timezone.utc))

        with pytest.raises(EntryLockedError):
            await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": "x"}, "late fix", resource_actor)

        assert ledger.is_locked(mro_entry) is True

    async def test_edit_into_primary_conflict(self, ledger, resource_actor, mro_entry, make_fields):
        """Changing a request id onto a primary-held id raises a conflict."""
        other = await ledger.create_entry("mro", make_fields(request_id="REQ-200"), resource_actor)

        with pytest.raises(ConflictWarning):
            await ledger.edit_entry(
                other.allocation_entry_id, {"request_id": "REQ-100"}, "typo", resource_actor
            )

        edited = await ledger.edit_entry(
            other.allocation_entry_id,
            {"request_id": "REQ-100", "request_type": "Follow up"},
            "typo",
            resource_actor,
        )
        assert edited.request_id == "REQ-100"

    async def test_missing_entry(self, ledger, resource_actor):
        """Unknown ids raise not found."""
        with pytest.raises(NotFoundError):
            await ledger.edit_entry(uuid4(), {"remark": "x"}, "reason", resource_actor)

    async def test_only_own_entries(self, ledger, audit, other_resource, admin_actor, mro_entry):
        """Resources can't edit someone else's entry; admins can."""
        with pytest.raises(OwnershipError) as exc_info:
            await ledger.edit_entry(
                mro_entry.allocation_entry_id, {"remark": "hijacked"}, "mine now", other_resource
            )

        assert exc_info.value.message == OWN_ENTRIES_ONLY_MESSAGE
        assert exc_info.value.status_code == 403
        assert mro_entry.remark == ""
        assert mro_entry.edit_count == 0
        assert await audit.get_edit_history(mro_entry.allocation_entry_id) == []

        edited = await ledger.edit_entry(
            mro_entry.allocation_entry_id, {"remark": "checked"}, "review", admin_actor
        )
        assert edited.remark == "checked"

    async def test_non_string_value_rejected(self, ledger, resource_actor, mro_entry):
        """A non-string text value is a validation error, not a crash."""
        with pytest.raises(ValidationError, match="remark must be a string"):
            await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": 5}, "r", resource_actor)
        with pytest.raises(ValidationError, match="request_id must be a string"):
            await ledger.edit_entry(
                mro_entry.allocation_entry_id, {"request_id": {"id": 1}}, "r", resource_actor
            )

        assert mro_entry.edit_count == 0


@pytest.mark.asyncio
class TestLockEntry:
    """Test administrative locks."""

    async def test_admin_lock_blocks_edits(self, ledger, audit, admin_actor, resource_actor, mro_entry):
        """A locked entry can't be edited in an open month."""
        locked = await ledger.lock_entry(mro_entry.allocation_entry_id, admin_actor, "audit hold")

        assert locked.is_locked is True
        assert locked.locked_reason == "audit hold"
        assert ledger.is_locked(locked) is True

        with pytest.raises(EntryLockedError):
            await ledger.edit_entry(mro_entry.allocation_entry_id, {"remark": "x"}, "fix", resource_actor)

        events = await audit.get_activity(
            entry_id=mro_entry.allocation_entry_id, activity_type=ActivityType.CASE_LOCKED
        )
        assert len(events) == 1

    async def test_lock_is_idempotent(self, ledger, audit, admin_actor, mro_entry):
        """Locking twice records one event."""
        await ledger.lock_entry(mro_entry.allocation_entry_id, admin_actor)
        await ledger.lock_entry(mro_entry.allocation_entry_id, admin_actor)

        events = await audit.get_activity(
            entry_id=mro_entry.allocation_entry_id, activity_type=ActivityType.CASE_LOCKED
        )
        assert len(events) == 1
        assert mro_entry.locked_reason == "admin_lock"

    async def test_only_admins_lock(self, ledger, resource_actor, mro_entry):
        """Resources can't lock entries."""
        with pytest.raises(ValidationError, match="Only admins"):
            await ledger.lock_entry(mro_entry.allocation_entry_id, resource_actor)


@pytest.mark.asyncio
class TestListEntries:
    """Test queries."""

    async def test_filters(self, ledger, resource_actor, other_resource, make_fields):
        """Filters narrow by resource, request id and dates."""
        await ledger.create_entry("mro", make_fields(request_id="A"), resource_actor)
        await ledger.create_entry(
            "mro", make_fields(request_id="B", allocation_date=date(2025, 3, 3)), resource_actor
        )
        await ledger.create_entry("mro", make_fields(request_id="C"), other_resource)
        await ledger.create_entry("verisma", make_fields(request_id="A"), resource_actor)

        everything = await ledger.list_entries("mro")
        mine = await ledger.list_entries("mro", EntryFilters(resource_email="ALICE@example.com"))
        early = await ledger.list_entries("mro", EntryFilters(date_to=date(2025, 3, 10)))
        by_request = await ledger.list_entries("mro", EntryFilters(request_id="A"))

        assert [e.request_id for e in everything] == ["A", "C", "B"]
        assert {e.request_id for e in mine} == {"A", "B"}
        assert [e.request_id for e in early] == ["B"]
        assert len(by_request) == 1

    async def test_ordering(self, ledger, resource_actor, other_resource, make_fields):
        """Newest date first, then email, then serial number."""
        await ledger.create_entry("mro", make_fields(request_id="B2"), other_resource)
        await ledger.create_entry("mro", make_fields(request_id="A1"), resource_actor)
        await ledger.create_entry("mro", make_fields(request_id="A2"), resource_actor)
        await ledger.create_entry(
            "mro", make_fields(request_id="OLD", allocation_date=date(2025, 3, 1)), resource_actor
        )

        entries = await ledger.list_entries("mro")

        assert [e.request_id for e in entries] == ["A1", "A2", "B2", "OLD"]

    async def test_pagination(self, ledger, resource_actor, make_fields):
        """Limit and offset page through results."""
        for i in range(3):
            await ledger.create_entry("mro", make_fields(request_id=f"P{i}"), resource_actor)

        page = await ledger.list_entries("mro", EntryFilters(limit=2, offset=1))

        assert [e.sr_no for e in page] == [2, 3]
