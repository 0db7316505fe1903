"""Per-client billing summary over ledger entries."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from allocation_engine.calculators.types import CENTS, BillingRow, BillingSummary


def billing_amount(rate: Decimal, count: int) -> Decimal:
    """Amount billed for an entry: rate x count, to the cent."""
    return (Decimal(rate) * count).quantize(CENTS, rounding=ROUND_HALF_UP)


def summarize_billing(entries: Iterable[Any]) -> BillingSummary:
    """Group entries by (client, resource, location, request type).

    Soft-deleted entries are skipped. Rows are ordered by client, resource
    email, location, then request type.
    """
    rows: dict[tuple[str, str, str, str], BillingRow] = {}

    for entry in entries:
        if getattr(entry, "is_deleted", False):
            continue
        email = (entry.resource_email or "").strip().lower()
        key = (entry.client_type, email, entry.location_name or "", entry.request_type or "")
        row = rows.get(key)
        if row is None:
            row = BillingRow(
                client_type=entry.client_type,
                resource_email=email,
                resource_name=entry.resource_name or email,
                location_name=entry.location_name or "",
                request_type=entry.request_type or "",
            )
            rows[key] = row
        row.cases += entry.count
        row.total_amount += Decimal(entry.billing_amount or 0)

    summary = BillingSummary(rows=[rows[key] for key in sorted(rows)])
    for row in summary.rows:
        row.total_amount = row.total_amount.quantize(CENTS, rounding=ROUND_HALF_UP)
        summary.total_cases += row.cases
        summary.total_amount += row.total_amount
    return summary
