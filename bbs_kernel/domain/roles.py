"""
Role and capability types (``bbs_kernel.domain.roles``).

Responsibility
--------------
Closed enumerations for actor roles and capability categories, and the
``CapabilityMatrix`` that answers "can this role ever do X" without ever
looking at a specific observation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The default
matrix is compiled from YAML by ``bbs_config``; the kernel only defines the
shape and the lookup semantics.

Invariants enforced
-------------------
* RC-1: Roles and categories are closed enums; a free-form role string is
  rejected when the matrix is built, never silently ignored.
* RC-2: A category whose scope list is empty grants nothing.  The matrix
  is deny-by-default: a role/category pair absent from the matrix is
  treated exactly like an empty scope list.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

BBS_MODULE = "bbs"


class Role(str, Enum):
    """Actor roles recognised by the observation workflow."""

    COMPANY_OWNER = "company_owner"
    PLANT_HEAD = "plant_head"
    SAFETY_INCHARGE = "safety_incharge"
    HOD = "hod"
    WORKER = "worker"
    CONTRACTOR = "contractor"


class CapabilityCategory(str, Enum):
    """Action categories a role may be granted per module."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    REVIEW = "review"
    APPROVE = "approve"
    DELETE = "delete"
    MANAGE = "manage"


@dataclass(frozen=True)
class Capability:
    """A (module, category) pair a role is allowed to exercise."""

    module: str
    category: CapabilityCategory


@dataclass(frozen=True)
class CapabilityGrant:
    """One cell of the matrix: the scopes a role holds for a category."""

    role: Role
    module: str
    category: CapabilityCategory
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class CapabilityMatrix:
    """Pure role -> capability lookup table.

    Contract: frozen, stateless, injectable.
    Guarantees: ``capabilities(role)`` only contains pairs whose scope list
    is non-empty (RC-2).
    Non-goals: never inspects a record; record-specific rules belong to
    the authorization guard.
    """

    grants: tuple[CapabilityGrant, ...] = ()

    def capabilities(self, role: Role | str) -> frozenset[Capability]:
        """Return every (module, category) the role may ever perform."""
        role = Role(role)
        return frozenset(
            Capability(g.module, g.category)
            for g in self.grants
            if g.role == role and g.scopes
        )

    def scopes(
        self,
        role: Role | str,
        category: CapabilityCategory,
        module: str = BBS_MODULE,
    ) -> tuple[str, ...]:
        """Return the scope list for a role/category (empty when absent)."""
        role = Role(role)
        for g in self.grants:
            if g.role == role and g.module == module and g.category == category:
                return g.scopes
        return ()

    def has_capability(
        self,
        role: Role | str,
        category: CapabilityCategory,
        module: str = BBS_MODULE,
    ) -> bool:
        return Capability(module, category) in self.capabilities(role)

    def roles_with(
        self,
        category: CapabilityCategory,
        module: str = BBS_MODULE,
    ) -> frozenset[Role]:
        """Return every role that holds a non-empty grant for the category."""
        return frozenset(
            g.role
            for g in self.grants
            if g.module == module and g.category == category and g.scopes
        )

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Mapping[str, Mapping[str, Sequence[str]]]],
    ) -> CapabilityMatrix:
        """Build a matrix from ``{role: {module: {category: [scopes]}}}``.

        Raises:
            ValueError: on an unknown role or category (RC-1).
        """
        grants: list[CapabilityGrant] = []
        for role_name in sorted(mapping):
            role = Role(role_name)
            modules = mapping[role_name] or {}
            for module in sorted(modules):
                categories = modules[module] or {}
                for category_name in sorted(categories):
                    grants.append(
                        CapabilityGrant(
                            role=role,
                            module=module,
                            category=CapabilityCategory(category_name),
                            scopes=tuple(categories[category_name] or ()),
                        )
                    )
        return cls(grants=tuple(grants))
