"""Actor identity as resolved by an identity provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from bbs_kernel.domain.roles import Role


@dataclass(frozen=True)
class Actor:
    """Who is acting, under which role, and in which scope.

    ``plant_id`` is None for company-wide roles.
    """

    actor_id: UUID
    role: Role
    company_id: UUID
    plant_id: UUID | None = None
    area_id: UUID | None = None
    name: str = ""


class IdentityProvider(Protocol):
    """Pluggable identity/role lookup consumed by the workflow service."""

    def get_actor(self, actor_id: UUID) -> Actor | None:
        """Return the actor, or None if unknown."""
        ...
