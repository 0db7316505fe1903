"""Activity log model."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from allocation_engine.models.base import Base, JSONType, TimestampMixin


class ActivityLog(Base, TimestampMixin):
    """Append-only activity trail entry.

    Survives hard deletes of the entry it describes.
    """

    __tablename__ = "activity_log"

    activity_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    activity_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    actor_type: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    client_type: Mapped[str] = mapped_column(String, nullable=False)
    allocation_entry_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('CASE_LOGGED', 'CASE_UPDATED', 'CASE_LOCKED', "
            "'DELETE_REQUESTED', 'DELETE_APPROVED', 'DELETE_REJECTED')",
            name="activity_log_type_check",
        ),
        CheckConstraint(
            "actor_type IN ('resource', 'admin', 'system')",
            name="activity_log_actor_type_check",
        ),
    )
