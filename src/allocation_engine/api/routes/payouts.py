"""Payout and billing API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path

from allocation_engine.api.dependencies import CurrentClock, Payouts
from allocation_engine.api.schemas import (
    BillingResponse,
    ErrorResponse,
    PayoutRequest,
    PayoutResponse,
    PayoutSummaryResponse,
    ResourcePayoutResponse,
)
from allocation_engine.calculators.payout_engine import summarize_payouts
from allocation_engine.calculators.types import DEFAULT_SLABS, PayoutConfig, SlabTable
from allocation_engine.clients import ClientType
from allocation_engine.config import get_settings
from allocation_engine.errors import ValidationError
from allocation_engine.services.lock_rules import today_in_business_tz

router = APIRouter(tags=["payouts"])


@router.post(
    "/payouts/compute",
    response_model=PayoutResponse,
    responses={400: {"model": ErrorResponse}},
)
async def compute_payouts(
    service: Payouts,
    clock: CurrentClock,
    payload: PayoutRequest,
) -> PayoutResponse:
    """Compute per-resource payouts for a period."""
    settings = get_settings()
    if payload.slabs:
        slabs = SlabTable.from_dicts([slab.model_dump() for slab in payload.slabs])
    else:
        slabs = DEFAULT_SLABS

    today = None
    if payload.include_working_days_left:
        today = today_in_business_tz(clock, settings.business_timezone)

    try:
        config = PayoutConfig(
            period_start=payload.period_start,
            period_end=payload.period_end,
            hours_per_day=settings.hours_per_day,
            complete_logging_process_ids=(
                frozenset(payload.complete_logging_process_ids)
                if payload.complete_logging_process_ids is not None
                else None
            ),
            processing_rates=payload.processing_rates,
            today=today,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    results = await service.compute_payout(
        payload.client_types,
        payload.period_start,
        payload.period_end,
        slabs=slabs,
        config=config,
        resource_email=payload.resource_email,
    )
    summary = summarize_payouts(results, config)
    return PayoutResponse(
        results=[ResourcePayoutResponse.model_validate(result) for result in results],
        summary=PayoutSummaryResponse.model_validate(summary),
    )


@router.get("/payouts/slabs")
async def get_default_slabs() -> dict:
    """Default slab table, complete-logging rate and target tiers."""
    defaults = PayoutConfig()
    return {
        "slabs": DEFAULT_SLABS.to_dicts(),
        "complete_logging_rate": str(defaults.top_rate),
        "targets": list(defaults.targets),
    }


@router.get(
    "/billing/{client_type}",
    response_model=BillingResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_billing_summary(
    service: Payouts,
    client_type: Annotated[ClientType, Path()],
    period_start: date,
    period_end: date,
    resource_email: str | None = None,
) -> BillingResponse:
    """Billing rows grouped by resource, location and request type."""
    summary = await service.summarize_billing(client_type, period_start, period_end, resource_email)
    return BillingResponse.model_validate(summary)
