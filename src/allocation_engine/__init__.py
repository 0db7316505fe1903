"""Allocation ledger with delete-request workflow and tiered payout computation."""

__version__ = "1.0.0"
