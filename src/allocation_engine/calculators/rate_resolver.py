"""Billing rate resolution with dimensional matching."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.clients import ClientType, get_profile
from allocation_engine.models import BillingRate

if TYPE_CHECKING:
    from allocation_engine.models import AllocationEntry


class BillingRateResolver:
    """Resolves per-case billing rates.

    Rate selection priority:
    1. Select from billing_rate table using:
       - Matching dimensions (location/process/request type/requestor type)
       - Most specific match wins (more dimensions matched = higher score)
       - Priority tie-breaker
    2. Client profile's built-in default rules
    3. Zero
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_rate(
        self,
        client_type: ClientType | str,
        location_id: UUID | None = None,
        process_name: str | None = None,
        request_type: str = "",
        requestor_type: str = "",
    ) -> Decimal:
        """Resolve the billing rate for one case."""
        profile = get_profile(client_type)
        rates = await self._get_candidate_rates(profile.client_type.value)

        best_rate: BillingRate | None = None
        best_score = -1
        best_priority = -1

        for rate in rates:
            score = rate.matches_dimensions(
                location_id=location_id,
                process_type=process_name,
                request_type=request_type,
                requestor_type=requestor_type,
            )

            if score < 0:
                # Explicit mismatch, skip
                continue

            # Higher score wins, then higher priority
            if score > best_score or (score == best_score and rate.priority > best_priority):
                best_rate = rate
                best_score = score
                best_priority = rate.priority

        if best_rate is not None:
            return Decimal(best_rate.rate)

        return profile.default_rate(process_name, request_type, requestor_type)

    async def resolve_rate_for_entry(self, entry: AllocationEntry) -> Decimal:
        """Resolve the billing rate for an entry's current classification."""
        return await self.resolve_rate(
            entry.client_type,
            location_id=entry.location_id,
            process_name=entry.process_name,
            request_type=entry.request_type,
            requestor_type=entry.requestor_type,
        )

    async def _get_candidate_rates(self, client_type: str) -> list[BillingRate]:
        """Get all configured rates for a client."""
        result = await self.session.execute(
            select(BillingRate).where(BillingRate.client_type == client_type)
        )
        return list(result.scalars().all())
