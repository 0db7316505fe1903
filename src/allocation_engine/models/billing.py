"""Billing rate reference data."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from allocation_engine.models.base import Base, TimestampMixin


class BillingRate(Base, TimestampMixin):
    """Per-case client billing rate with dimensional matching.

    A NULL dimension is a wildcard; a set dimension must match exactly.
    """

    __tablename__ = "billing_rate"

    billing_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    client_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    location_id: Mapped[UUID | None] = mapped_column(nullable=True)
    process_type: Mapped[str | None] = mapped_column(String, nullable=True)
    request_type: Mapped[str | None] = mapped_column(String, nullable=True)
    requestor_type: Mapped[str | None] = mapped_column(String, nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("rate >= 0", name="billing_rate_non_negative"),
    )

    def matches_dimensions(
        self,
        location_id: UUID | None,
        process_type: str | None,
        request_type: str | None,
        requestor_type: str | None,
    ) -> int:
        """Calculate dimension match score (higher = more specific)."""
        score = 0
        if self.location_id is not None:
            if self.location_id == location_id:
                score += 8
            else:
                return -1  # Explicit mismatch
        if self.process_type is not None:
            if self.process_type == process_type:
                score += 4
            else:
                return -1
        if self.request_type is not None:
            if self.request_type == request_type:
                score += 2
            else:
                return -1
        if self.requestor_type is not None:
            if self.requestor_type == requestor_type:
                score += 1
            else:
                return -1
        return score
