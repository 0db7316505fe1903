"""Tiered productivity payout computation.

Pure over an immutable snapshot of ledger entries: no database access, no
wall clock. Calculation order per resource:
1) Partition entries into logging and processing by client profile
2) Count distinct Mon-Fri dates with logging work
3) Hours = weekday days worked x hours per day
4) Average logging cases per hour (0 when no hours)
5) Select the slab for that average
6) Basic payout = logging cases x slab rate
7) Complete-logging bonus = (top rate - slab rate) per flagged case
8) Processing payout from per-location flat rates
9) Cases still needed to reach each target tier
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from allocation_engine.calculators.types import (
    CENTS,
    DEFAULT_SLABS,
    DailyBreakdown,
    PayoutConfig,
    PayoutEntry,
    PayoutSummary,
    ResourcePayoutResult,
    SlabTable,
)
from allocation_engine.clients import get_profile

logger = logging.getLogger(__name__)

AVG_PRECISION = Decimal("0.0001")


def working_days_left(today: date, period_end: date) -> int:
    """Weekdays from today through period_end inclusive."""
    if today > period_end:
        return 0
    days = (period_end - today).days + 1
    return sum(1 for offset in range(days) if (today + timedelta(days=offset)).weekday() < 5)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _safe_count(entry: Any) -> int:
    """Case count of an entry; missing or malformed counts are treated as 1."""
    raw = getattr(entry, "count", None)
    try:
        count = int(raw)
    except (TypeError, ValueError, OverflowError):
        count = 0
    if count < 1:
        logger.warning(
            "Malformed count %r for %s on %s, using 1",
            raw,
            getattr(entry, "resource_email", "?"),
            getattr(entry, "allocation_date", "?"),
        )
        return 1
    return count


def is_complete_logging(entry: Any, config: PayoutConfig) -> bool:
    """Check if a logging entry earns the complete-logging bonus.

    Uses the explicit process id set when configured, otherwise the
    process name heuristic.
    """
    if config.complete_logging_process_ids is not None:
        return getattr(entry, "process_id", None) in config.complete_logging_process_ids
    name = (getattr(entry, "process_name", "") or "").lower()
    return "complete" in name and "log" in name


class _ResourceTally:
    """Mutable accumulator for one resource."""

    def __init__(self, email: str, name: str):
        self.email = email
        self.name = name
        self.logging_cases = 0
        self.processing_cases = 0
        self.complete_logging_cases = 0
        self.processing_payout = Decimal("0")
        self.weekday_logging_dates: set = set()
        self.daily: dict = {}

    @property
    def total_cases(self) -> int:
        return self.logging_cases + self.processing_cases

    def day(self, allocation_date) -> DailyBreakdown:
        if allocation_date not in self.daily:
            self.daily[allocation_date] = DailyBreakdown(allocation_date=allocation_date)
        return self.daily[allocation_date]


class PayoutEngine:
    """Computes per-resource payouts from a snapshot of entries."""

    def __init__(self, slabs: SlabTable | None = None, config: PayoutConfig | None = None):
        self.slabs = slabs or DEFAULT_SLABS
        self.config = config or PayoutConfig()

    def compute(self, entries: Iterable[Any]) -> list[ResourcePayoutResult]:
        """Compute payouts, sorted by total cases desc then email."""
        tallies: dict[str, _ResourceTally] = {}

        for entry in entries:
            allocation_date = entry.allocation_date
            if not self.config.in_period(allocation_date):
                continue
            email = (entry.resource_email or "").strip().lower()
            if not email:
                logger.warning("Skipping entry without resource email on %s", allocation_date)
                continue

            tally = tallies.get(email)
            if tally is None:
                tally = _ResourceTally(email, entry.resource_name or email)
                tallies[email] = tally

            count = _safe_count(entry)
            profile = get_profile(entry.client_type)
            day = tally.day(allocation_date)

            if profile.is_processing(entry.process_name):
                tally.processing_cases += count
                day.processing_cases += count
                rate = self.config.processing_rates.get(getattr(entry, "location_id", None))
                if rate is not None:
                    tally.processing_payout += Decimal(str(rate)) * count
            else:
                tally.logging_cases += count
                day.logging_cases += count
                if allocation_date.weekday() < 5:
                    tally.weekday_logging_dates.add(allocation_date)
                if is_complete_logging(entry, self.config):
                    tally.complete_logging_cases += count

        results = [self._finalize(tally) for tally in tallies.values()]
        results.sort(key=lambda r: (-r.total_cases, r.resource_email))
        return results

    def _finalize(self, tally: _ResourceTally) -> ResourcePayoutResult:
        days_worked = len(tally.weekday_logging_dates)
        total_hours = days_worked * self.config.hours_per_day

        if total_hours > 0:
            avg = Decimal(tally.logging_cases) / Decimal(total_hours)
        else:
            avg = Decimal("0")

        # Select on the unrounded average so gap values are not pushed up a tier
        slab = self.slabs.select(avg)

        basic = _money(Decimal(tally.logging_cases) * slab.rate)
        bonus_rate = max(Decimal("0"), self.config.top_rate - slab.rate)
        bonus = _money(Decimal(tally.complete_logging_cases) * bonus_rate)
        processing = _money(tally.processing_payout)

        to_achieve = {}
        for target in self.config.targets:
            needed = (Decimal(target) * days_worked * self.config.hours_per_day).to_integral_value(
                rounding=ROUND_CEILING
            )
            to_achieve[target] = max(0, int(needed) - tally.logging_cases)

        return ResourcePayoutResult(
            resource_email=tally.email,
            resource_name=tally.name,
            total_cases=tally.total_cases,
            logging_cases=tally.logging_cases,
            processing_cases=tally.processing_cases,
            complete_logging_cases=tally.complete_logging_cases,
            weekday_days_worked=days_worked,
            total_hours=total_hours,
            avg_cases_per_hour=avg.quantize(AVG_PRECISION, rounding=ROUND_HALF_UP),
            slab=slab,
            basic_payout=basic,
            bonus_rate=bonus_rate,
            complete_logging_bonus=bonus,
            processing_payout=processing,
            total_payout=basic + bonus + processing,
            to_achieve=to_achieve,
            daily_breakdown=[tally.daily[d] for d in sorted(tally.daily)],
            working_days_left=self._working_days_left(),
        )

    def _working_days_left(self) -> int | None:
        if self.config.today is None or self.config.period_end is None:
            return None
        return working_days_left(self.config.today, self.config.period_end)


def compute_payout(
    entries: Iterable[Any],
    slabs: SlabTable | None = None,
    config: PayoutConfig | None = None,
) -> list[ResourcePayoutResult]:
    """Compute per-resource payouts for a snapshot of entries."""
    return PayoutEngine(slabs, config).compute(entries)


def summarize_payouts(
    results: list[ResourcePayoutResult],
    config: PayoutConfig | None = None,
) -> PayoutSummary:
    """Aggregate totals across resources."""
    summary = PayoutSummary(total_resources=len(results))
    for result in results:
        summary.total_cases += result.total_cases
        summary.total_logging_cases += result.logging_cases
        summary.total_processing_cases += result.processing_cases
        summary.total_complete_logging_cases += result.complete_logging_cases
        summary.total_basic_payout += result.basic_payout
        summary.total_bonus += result.complete_logging_bonus
        summary.total_processing_payout += result.processing_payout
        summary.total_payout += result.total_payout
    if config is not None and config.today is not None and config.period_end is not None:
        summary.working_days_left = working_days_left(config.today, config.period_end)
    return summary


__all__ = [
    "PayoutEngine",
    "PayoutEntry",
    "compute_payout",
    "is_complete_logging",
    "summarize_payouts",
]
