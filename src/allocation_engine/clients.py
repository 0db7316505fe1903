"""Per-client configuration: enum tables, request-id rules and billing defaults.

Each client type gets one frozen ClientProfile. Services look the profile up
by `client_type` instead of branching on the client name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from allocation_engine.errors import ValidationError


class ClientType(str, Enum):
    """Client ledgers."""

    MRO = "mro"
    VERISMA = "verisma"
    DATAVANT = "datavant"


PRIMARY_REQUEST_TYPE = "New Request"


@dataclass(frozen=True)
class DefaultRateRule:
    """Built-in billing rate used when no BillingRate row matches.

    A None dimension matches anything.
    """

    rate: Decimal
    process_name: str | None = None
    requestor_types: frozenset[str] | None = None
    request_type: str | None = None

    def matches(self, process_name: str, request_type: str, requestor_type: str) -> bool:
        if self.process_name is not None and self.process_name != process_name:
            return False
        if self.request_type is not None and self.request_type != request_type:
            return False
        if self.requestor_types is not None and requestor_type not in self.requestor_types:
            return False
        return True


@dataclass(frozen=True)
class ClientProfile:
    """Strategy object describing one client's ledger rules."""

    client_type: ClientType
    display_name: str
    request_types: tuple[str, ...]
    secondary_fallback: str
    requestor_types: tuple[str, ...] = ()
    # None means free text
    task_types: tuple[str, ...] | None = None
    allows_multi_count: bool = True
    # Process names whose cases are paid as processing instead of logging
    processing_process_names: frozenset[str] = field(default_factory=frozenset)
    default_rate_rules: tuple[DefaultRateRule, ...] = ()
    primary_request_type: str = PRIMARY_REQUEST_TYPE

    def is_primary(self, request_type: str) -> bool:
        """Check if a request type is this client's primary classification."""
        return request_type == self.primary_request_type

    def is_processing(self, process_name: str | None) -> bool:
        """Check if a process counts as processing (not logging) for payouts."""
        return (process_name or "").strip() in self.processing_process_names

    def validate_request_type(self, request_type: str) -> bool:
        return request_type in self.request_types

    def validate_requestor_type(self, requestor_type: str) -> bool:
        # Empty is always allowed
        if not requestor_type:
            return True
        return requestor_type in self.requestor_types

    def validate_task_type(self, task_type: str) -> bool:
        if self.task_types is None or not task_type:
            return True
        return task_type in self.task_types

    def normalize_count(self, count: int) -> int:
        """Single-count clients always store 1."""
        return count if self.allows_multi_count else 1

    def default_rate(
        self,
        process_name: str | None,
        request_type: str,
        requestor_type: str,
    ) -> Decimal:
        """First matching built-in rate, or 0."""
        for rule in self.default_rate_rules:
            if rule.matches((process_name or "").strip(), request_type, requestor_type):
                return rule.rate
        return Decimal("0")


MRO_PROFILE = ClientProfile(
    client_type=ClientType.MRO,
    display_name="MRO",
    request_types=("Batch", "DDS", "E-link", "E-Request", "Follow up", "New Request"),
    secondary_fallback="Follow up",
    requestor_types=(
        "NRS-NO Records",
        "Manual",
        "Other Processing (Canceled/Released By Other)",
        "Processed",
        "Processed through File Drop",
    ),
    task_types=(),
    allows_multi_count=False,
    processing_process_names=frozenset({"Processing"}),
    default_rate_rules=(
        DefaultRateRule(
            rate=Decimal("2.25"),
            process_name="Processing",
            requestor_types=frozenset({"NRS-NO Records"}),
        ),
        DefaultRateRule(
            rate=Decimal("3.00"),
            process_name="Processing",
            requestor_types=frozenset({"Manual", "Processed", "Processed through File Drop"}),
        ),
        DefaultRateRule(rate=Decimal("1.08"), process_name="Logging"),
    ),
)

VERISMA_PROFILE = ClientProfile(
    client_type=ClientType.VERISMA,
    display_name="Verisma",
    request_types=("New Request", "Duplicate", "Key"),
    secondary_fallback="Duplicate",
    requestor_types=(
        "Disability",
        "Government",
        "In Payment",
        "Insurance",
        "Legal",
        "Other billable",
        "Other",
        "Non-Billable",
        "Patient",
        "Post payment",
        "Provider",
        "Service",
    ),
)

DATAVANT_PROFILE = ClientProfile(
    client_type=ClientType.DATAVANT,
    display_name="Datavant",
    request_types=("New Request", "Duplicate", "Follow up"),
    secondary_fallback="Duplicate",
)

CLIENT_PROFILES: dict[ClientType, ClientProfile] = {
    ClientType.MRO: MRO_PROFILE,
    ClientType.VERISMA: VERISMA_PROFILE,
    ClientType.DATAVANT: DATAVANT_PROFILE,
}


def get_profile(client_type: ClientType | str) -> ClientProfile:
    """Look up a client profile, raising ValidationError for unknown clients."""
    if isinstance(client_type, ClientType):
        return CLIENT_PROFILES[client_type]
    try:
        return CLIENT_PROFILES[ClientType(client_type.strip().lower())]
    except ValueError:
        raise ValidationError(f"Unknown client type: {client_type}") from None
