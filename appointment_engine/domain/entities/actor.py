from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    customer = "customer"
    staff = "staff"
    admin = "admin"
    system = "system"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: ActorRole
    business_id: str | None = None  # set for admins

    def is_admin_of(self, business_id: str) -> bool:
        if self.role == ActorRole.system:
            return True
        return self.role == ActorRole.admin and self.business_id == business_id
