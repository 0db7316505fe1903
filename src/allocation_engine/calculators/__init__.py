"""Payout and billing calculators."""

from allocation_engine.calculators.billing import billing_amount, summarize_billing
from allocation_engine.calculators.payout_engine import PayoutEngine, compute_payout, summarize_payouts
from allocation_engine.calculators.rate_resolver import BillingRateResolver
from allocation_engine.calculators.types import (
    DEFAULT_SLABS,
    PayoutConfig,
    PayoutEntry,
    PayoutSlab,
    ResourcePayoutResult,
    SlabTable,
)

__all__ = [
    "BillingRateResolver",
    "DEFAULT_SLABS",
    "PayoutConfig",
    "PayoutEngine",
    "PayoutEntry",
    "PayoutSlab",
    "ResourcePayoutResult",
    "SlabTable",
    "billing_amount",
    "compute_payout",
    "summarize_billing",
    "summarize_payouts",
]
