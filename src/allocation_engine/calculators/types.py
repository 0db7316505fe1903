"""Type definitions for the payout and billing calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterator, Mapping
from uuid import UUID

from allocation_engine.errors import InvalidSlabTableError

CENTS = Decimal("0.01")
COMPLETE_LOGGING_RATE = Decimal("0.65")
SLAB_TARGETS: tuple[int, ...] = (13, 16, 21)
HOURS_PER_DAY = 8


@dataclass(frozen=True)
class PayoutSlab:
    """Productivity tier over cases per working hour.

    `max_value=None` means unbounded. Both bounds are inclusive.
    """

    min_value: Decimal
    max_value: Decimal | None
    rate: Decimal
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "min_value", Decimal(str(self.min_value)))
        if self.max_value is not None:
            object.__setattr__(self, "max_value", Decimal(str(self.max_value)))
        object.__setattr__(self, "rate", Decimal(str(self.rate)))
        if not self.label:
            upper = f"{self.max_value}" if self.max_value is not None else "+"
            object.__setattr__(self, "label", f"{self.min_value}-{upper}")

    @property
    def is_unbounded(self) -> bool:
        return self.max_value is None

    def contains(self, value: Decimal) -> bool:
        if value < self.min_value:
            return False
        return self.max_value is None or value <= self.max_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": str(self.min_value),
            "max": str(self.max_value) if self.max_value is not None else None,
            "rate": str(self.rate),
            "label": self.label,
        }


class SlabTable:
    """Ordered partition of [0, inf) into payout slabs.

    Validated on construction:
    - non-empty, first slab starts at 0
    - sorted by min, each min strictly above the previous max
    - only the last slab is unbounded, and it must be
    """

    def __init__(self, slabs: list[PayoutSlab] | tuple[PayoutSlab, ...]):
        self.slabs: tuple[PayoutSlab, ...] = tuple(slabs)
        self._validate()

    def _validate(self) -> None:
        if not self.slabs:
            raise InvalidSlabTableError("Slab table must contain at least one slab")

        if self.slabs[0].min_value != 0:
            raise InvalidSlabTableError("First slab must start at 0")

        for index, slab in enumerate(self.slabs):
            if slab.rate < 0:
                raise InvalidSlabTableError(f"Slab {slab.label} has a negative rate")
            is_last = index == len(self.slabs) - 1
            if slab.is_unbounded and not is_last:
                raise InvalidSlabTableError(f"Only the last slab may be unbounded ({slab.label})")
            if is_last and not slab.is_unbounded:
                raise InvalidSlabTableError("Last slab must be unbounded")
            if slab.max_value is not None and slab.max_value < slab.min_value:
                raise InvalidSlabTableError(f"Slab {slab.label} has max below min")
            if index > 0:
                previous = self.slabs[index - 1]
                if slab.min_value <= previous.max_value:
                    raise InvalidSlabTableError(
                        f"Slab {slab.label} overlaps or is out of order after {previous.label}"
                    )

    def __iter__(self) -> Iterator[PayoutSlab]:
        return iter(self.slabs)

    def __len__(self) -> int:
        return len(self.slabs)

    @property
    def top_rate(self) -> Decimal:
        return max(slab.rate for slab in self.slabs)

    def select(self, avg_cases_per_hour: Decimal) -> PayoutSlab:
        """Pick the slab for a productivity value.

        First slab containing the value wins. A value in the gap between one
        slab's max and the next min (e.g. 12.995) falls back to the highest
        slab whose min does not exceed it.
        """
        for slab in self.slabs:
            if slab.contains(avg_cases_per_hour):
                return slab

        candidate = self.slabs[0]
        for slab in self.slabs:
            if slab.min_value <= avg_cases_per_hour:
                candidate = slab
        return candidate

    @classmethod
    def from_dicts(cls, rows: list[Mapping[str, Any]]) -> SlabTable:
        """Build from `{min, max, rate[, label]}` mappings."""
        slabs = []
        for row in rows:
            try:
                slabs.append(
                    PayoutSlab(
                        min_value=row["min"],
                        max_value=row.get("max"),
                        rate=row["rate"],
                        label=row.get("label") or "",
                    )
                )
            except (KeyError, ArithmeticError) as exc:
                raise InvalidSlabTableError(f"Malformed slab {dict(row)}: {exc}") from exc
        return cls(slabs)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [slab.to_dict() for slab in self.slabs]


DEFAULT_SLABS = SlabTable(
    [
        PayoutSlab(Decimal("0"), Decimal("12.99"), Decimal("0.50")),
        PayoutSlab(Decimal("13"), Decimal("15.99"), Decimal("0.55")),
        PayoutSlab(Decimal("16"), Decimal("20.99"), Decimal("0.60")),
        PayoutSlab(Decimal("21"), None, Decimal("0.65")),
    ]
)


@dataclass(frozen=True)
class PayoutConfig:
    """Period and rate configuration for a payout computation.

    `today` only feeds the informational working-days-left figure.
    `complete_logging_process_ids=None` falls back to matching process names
    containing both "complete" and "log".
    """

    period_start: date | None = None
    period_end: date | None = None
    hours_per_day: int = HOURS_PER_DAY
    top_rate: Decimal = COMPLETE_LOGGING_RATE
    targets: tuple[int, ...] = SLAB_TARGETS
    complete_logging_process_ids: frozenset[UUID] | None = None
    processing_rates: Mapping[UUID, Decimal] = field(default_factory=dict)
    today: date | None = None

    def __post_init__(self) -> None:
        if self.hours_per_day <= 0:
            raise ValueError("hours_per_day must be positive")
        object.__setattr__(self, "top_rate", Decimal(str(self.top_rate)))
        if self.top_rate < 0:
            raise ValueError("top_rate cannot be negative")
        if any(target <= 0 for target in self.targets):
            raise ValueError("targets must be positive")
        object.__setattr__(self, "targets", tuple(sorted(self.targets)))
        if (
            self.period_start is not None
            and self.period_end is not None
            and self.period_end < self.period_start
        ):
            raise ValueError("period_end must not be before period_start")
        if self.complete_logging_process_ids is not None:
            object.__setattr__(
                self, "complete_logging_process_ids", frozenset(self.complete_logging_process_ids)
            )

    def in_period(self, value: date) -> bool:
        if self.period_start is not None and value < self.period_start:
            return False
        if self.period_end is not None and value > self.period_end:
            return False
        return True


@dataclass(frozen=True)
class PayoutEntry:
    """Snapshot of the entry fields the payout engine reads."""

    resource_email: str
    resource_name: str
    allocation_date: date
    count: Any
    client_type: str
    process_name: str = ""
    process_id: UUID | None = None
    location_id: UUID | None = None

    @classmethod
    def from_entry(cls, entry: Any) -> PayoutEntry:
        return cls(
            resource_email=entry.resource_email,
            resource_name=entry.resource_name,
            allocation_date=entry.allocation_date,
            count=entry.count,
            client_type=entry.client_type,
            process_name=entry.process_name or "",
            process_id=entry.process_id,
            location_id=entry.location_id,
        )


@dataclass
class DailyBreakdown:
    """Cases logged by one resource on one date."""

    allocation_date: date
    logging_cases: int = 0
    processing_cases: int = 0

    @property
    def is_weekend(self) -> bool:
        return self.allocation_date.weekday() >= 5

    @property
    def total_cases(self) -> int:
        return self.logging_cases + self.processing_cases


@dataclass
class ResourcePayoutResult:
    """Payout computed for one resource over one period."""

    resource_email: str
    resource_name: str
    total_cases: int
    logging_cases: int
    processing_cases: int
    complete_logging_cases: int
    weekday_days_worked: int
    total_hours: int
    avg_cases_per_hour: Decimal
    slab: PayoutSlab
    basic_payout: Decimal
    bonus_rate: Decimal
    complete_logging_bonus: Decimal
    processing_payout: Decimal
    total_payout: Decimal
    to_achieve: dict[int, int]
    daily_breakdown: list[DailyBreakdown] = field(default_factory=list)
    working_days_left: int | None = None

    @property
    def slab_rate(self) -> Decimal:
        return self.slab.rate

    @property
    def slab_label(self) -> str:
        return self.slab.label

    @property
    def weekend_cases(self) -> int:
        return sum(day.total_cases for day in self.daily_breakdown if day.is_weekend)


@dataclass
class PayoutSummary:
    """Totals across all resources of a payout run."""

    total_resources: int = 0
    total_cases: int = 0
    total_logging_cases: int = 0
    total_processing_cases: int = 0
    total_complete_logging_cases: int = 0
    total_basic_payout: Decimal = Decimal("0")
    total_bonus: Decimal = Decimal("0")
    total_processing_payout: Decimal = Decimal("0")
    total_payout: Decimal = Decimal("0")
    working_days_left: int | None = None


@dataclass
class BillingRow:
    """Billing aggregate for one (client, resource, location, request type)."""

    client_type: str
    resource_email: str
    resource_name: str
    location_name: str
    request_type: str
    cases: int = 0
    total_amount: Decimal = Decimal("0")


@dataclass
class BillingSummary:
    """Grouped billing rows plus grand totals."""

    rows: list[BillingRow] = field(default_factory=list)
    total_cases: int = 0
    total_amount: Decimal = Decimal("0")
