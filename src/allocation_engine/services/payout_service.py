"""Payout and billing queries over ledger snapshots."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.calculators.billing import summarize_billing
from allocation_engine.calculators.payout_engine import compute_payout
from allocation_engine.calculators.types import (
    BillingSummary,
    PayoutConfig,
    PayoutEntry,
    ResourcePayoutResult,
    SlabTable,
)
from allocation_engine.clients import ClientType, get_profile
from allocation_engine.errors import ValidationError
from allocation_engine.models import AllocationEntry


class PayoutService:
    """Reads a snapshot of non-deleted entries and hands it to the pure calculators.

    No writes. Results may lag concurrent ledger writes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_snapshot(
        self,
        client_types: Iterable[ClientType | str],
        period_start: date,
        period_end: date,
        resource_email: str | None = None,
    ) -> list[AllocationEntry]:
        """Non-deleted entries for the clients and inclusive date range."""
        if period_end < period_start:
            raise ValidationError("Period end must not be before period start")
        clients = sorted({get_profile(c).client_type.value for c in client_types})
        if not clients:
            raise ValidationError("At least one client type is required")

        query = select(AllocationEntry).where(
            AllocationEntry.client_type.in_(clients),
            AllocationEntry.is_deleted.is_(False),
            AllocationEntry.allocation_date >= period_start,
            AllocationEntry.allocation_date <= period_end,
        )
        if resource_email:
            query = query.where(AllocationEntry.resource_email == resource_email.strip().lower())
        query = query.order_by(
            AllocationEntry.allocation_date,
            AllocationEntry.resource_email,
            AllocationEntry.sr_no,
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def compute_payout(
        self,
        client_types: Iterable[ClientType | str],
        period_start: date,
        period_end: date,
        slabs: SlabTable | None = None,
        config: PayoutConfig | None = None,
        resource_email: str | None = None,
    ) -> list[ResourcePayoutResult]:
        """Per-resource payouts for a period."""
        entries = await self.load_snapshot(client_types, period_start, period_end, resource_email)
        config = replace(config or PayoutConfig(), period_start=period_start, period_end=period_end)
        snapshot = [PayoutEntry.from_entry(entry) for entry in entries]
        return compute_payout(snapshot, slabs, config)

    async def summarize_billing(
        self,
        client_type: ClientType | str,
        period_start: date,
        period_end: date,
        resource_email: str | None = None,
    ) -> BillingSummary:
        """Billing rows for one client over a period."""
        entries = await self.load_snapshot([client_type], period_start, period_end, resource_email)
        return summarize_billing(entries)
