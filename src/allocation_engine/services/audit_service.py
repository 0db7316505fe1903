"""Append-only edit history and activity log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.models import ActivityLog, EditHistoryRecord
from allocation_engine.services.actor import Actor, ActorRole
from allocation_engine.services.lock_rules import Clock, utc_clock

logger = logging.getLogger(__name__)


class ActivityType(str, Enum):
    """Activity log event types."""

    CASE_LOGGED = "CASE_LOGGED"
    CASE_UPDATED = "CASE_UPDATED"
    CASE_LOCKED = "CASE_LOCKED"
    DELETE_REQUESTED = "DELETE_REQUESTED"
    DELETE_APPROVED = "DELETE_APPROVED"
    DELETE_REJECTED = "DELETE_REJECTED"


@dataclass(frozen=True)
class FieldChange:
    """One field-level difference captured by an edit."""

    field: str
    old_value: Any
    new_value: Any

    def to_json(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "old_value": to_jsonable(self.old_value),
            "new_value": to_jsonable(self.new_value),
        }


def to_jsonable(value: Any) -> Any:
    """Convert ledger values to JSON-safe primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class AuditService:
    """Writes and reads the edit history and activity trails.

    Neither table is ever updated or deleted from; rows are keyed by entry id
    only, so they outlive a hard delete of the entry.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_clock):
        self.session = session
        self.clock = clock

    async def record_edit(
        self,
        entry_id: UUID,
        actor: Actor,
        changes: list[FieldChange],
        change_reason: str,
        change_notes: str | None = None,
    ) -> EditHistoryRecord:
        """Append one history record holding the full diff of an edit."""
        sequence = await self._next_sequence(entry_id)
        record = EditHistoryRecord(
            allocation_entry_id=entry_id,
            sequence=sequence,
            edited_by_id=actor.id,
            edited_by_name=actor.name,
            edited_by_email=actor.email,
            edited_by_role=(
                ActorRole.ADMIN.value if actor.is_admin else ActorRole.RESOURCE.value
            ),
            edited_at=self.clock(),
            change_reason=change_reason,
            change_notes=change_notes or None,
            fields_changed=[change.to_json() for change in changes],
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def record_activity(
        self,
        activity_type: ActivityType,
        actor: Actor,
        client_type: str,
        entry_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog:
        """Append an activity log event."""
        event = ActivityLog(
            activity_type=ActivityType(activity_type).value,
            actor_type=actor.role.value,
            actor_id=actor.id,
            actor_email=actor.email or None,
            actor_name=actor.name or None,
            client_type=client_type,
            allocation_entry_id=entry_id,
            details=to_jsonable(details or {}),
            created_at=self.clock(),
        )
        self.session.add(event)
        await self.session.flush()
        logger.info(
            "Activity %s on entry %s by %s", event.activity_type, entry_id, actor.email or actor.role.value
        )
        return event

    async def get_edit_history(self, entry_id: UUID) -> list[EditHistoryRecord]:
        """Edit history for an entry, oldest first."""
        result = await self.session.execute(
            select(EditHistoryRecord)
            .where(EditHistoryRecord.allocation_entry_id == entry_id)
            .order_by(EditHistoryRecord.sequence)
        )
        return list(result.scalars().all())

    async def get_activity(
        self,
        entry_id: UUID | None = None,
        activity_type: ActivityType | None = None,
        limit: int = 100,
    ) -> list[ActivityLog]:
        """Recent activity, newest first."""
        query = select(ActivityLog)
        if entry_id is not None:
            query = query.where(ActivityLog.allocation_entry_id == entry_id)
        if activity_type is not None:
            query = query.where(ActivityLog.activity_type == ActivityType(activity_type).value)
        query = query.order_by(ActivityLog.created_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _next_sequence(self, entry_id: UUID) -> int:
        result = await self.session.execute(
            select(func.max(EditHistoryRecord.sequence)).where(
                EditHistoryRecord.allocation_entry_id == entry_id
            )
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1
