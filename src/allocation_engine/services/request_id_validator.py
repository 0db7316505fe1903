"""Advisory request-id classification check.

At most one non-deleted entry per (client_type, request_id) should carry the
client's primary request type. The check is a separate read from the write
that follows it: two concurrent primary submissions for the same request id
can both succeed. That race is tolerated; there is no unique constraint and
no lock behind this check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation_engine.clients import ClientType, get_profile
from allocation_engine.errors import ConflictWarning
from allocation_engine.models import AllocationEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistingEntry:
    """Summary of an entry already using a request id."""

    allocation_entry_id: UUID
    request_type: str
    allocation_date: date
    resource_name: str
    resource_email: str
    location_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocation_entry_id": str(self.allocation_entry_id),
            "request_type": self.request_type,
            "allocation_date": self.allocation_date.isoformat(),
            "resource_name": self.resource_name,
            "resource_email": self.resource_email,
            "location_name": self.location_name,
        }


@dataclass(frozen=True)
class RequestIdCheck:
    """Result of looking up a request id."""

    request_id: str
    exists: bool
    has_primary: bool
    suggested_type: str
    existing_entries: list[ExistingEntry] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.existing_entries)


class RequestIdValidator:
    """Looks up prior entries for a request id and suggests a classification."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def check_request_id(
        self,
        client_type: ClientType | str,
        request_id: str | None,
        exclude_entry_id: UUID | None = None,
    ) -> RequestIdCheck:
        """Report prior usage of a request id.

        Blank ids are never checked. When a primary entry exists the
        suggestion is the client's secondary fallback; when only secondary
        entries exist the fallback is suggested as a non-blocking hint.
        """
        profile = get_profile(client_type)
        normalized = (request_id or "").strip()

        if not normalized:
            return RequestIdCheck(
                request_id="",
                exists=False,
                has_primary=False,
                suggested_type=profile.primary_request_type,
            )

        query = select(AllocationEntry).where(
            AllocationEntry.client_type == profile.client_type.value,
            AllocationEntry.request_id == normalized,
            AllocationEntry.is_deleted.is_(False),
        )
        if exclude_entry_id is not None:
            query = query.where(AllocationEntry.allocation_entry_id != exclude_entry_id)
        query = query.order_by(AllocationEntry.allocation_date, AllocationEntry.created_at)

        result = await self.session.execute(query)
        entries = list(result.scalars().all())

        if not entries:
            return RequestIdCheck(
                request_id=normalized,
                exists=False,
                has_primary=False,
                suggested_type=profile.primary_request_type,
            )

        has_primary = any(profile.is_primary(e.request_type) for e in entries)
        return RequestIdCheck(
            request_id=normalized,
            exists=True,
            has_primary=has_primary,
            suggested_type=profile.secondary_fallback,
            existing_entries=[
                ExistingEntry(
                    allocation_entry_id=e.allocation_entry_id,
                    request_type=e.request_type,
                    allocation_date=e.allocation_date,
                    resource_name=e.resource_name,
                    resource_email=e.resource_email,
                    location_name=e.location_name,
                )
                for e in entries
            ],
        )

    async def validate_classification(
        self,
        client_type: ClientType | str,
        request_id: str | None,
        proposed_type: str,
        override: bool = False,
        exclude_entry_id: UUID | None = None,
    ) -> RequestIdCheck:
        """Check a proposed request type for a request id.

        Raises:
            ConflictWarning: A primary entry already exists, the proposal is
                primary, and the caller did not override.
        """
        profile = get_profile(client_type)
        check = await self.check_request_id(profile.client_type, request_id, exclude_entry_id)

        if check.has_primary and profile.is_primary(proposed_type):
            if not override:
                raise ConflictWarning(
                    request_id=check.request_id,
                    suggested_type=profile.secondary_fallback,
                    primary_type=profile.primary_request_type,
                    existing_entries=[e.to_dict() for e in check.existing_entries],
                )
            logger.warning(
                "Primary request type override for %s request id %s",
                profile.client_type.value,
                check.request_id,
            )

        return check
