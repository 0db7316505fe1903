"""Identity of whoever performs a ledger operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class ActorRole(str, Enum):
    RESOURCE = "resource"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Caller identity supplied by the (external) authentication layer."""

    id: UUID | None
    name: str
    email: str
    role: ActorRole = ActorRole.RESOURCE

    def __post_init__(self) -> None:
        object.__setattr__(self, "email", (self.email or "").strip().lower())
        object.__setattr__(self, "role", ActorRole(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    def can_act_for(self, resource_id: UUID | None) -> bool:
        """Admins act on any entry; resources only on their own."""
        return self.is_admin or (self.id is not None and self.id == resource_id)
