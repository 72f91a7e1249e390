"""
Permission engine.

Maps an actor's membership in an organization to the (area, action) pairs
it may perform. The permission table is configuration: it is built once at
process start, never mutated, and handed to every check explicitly.
"""

from __future__ import annotations

import enum
import json
from collections.abc import Iterable, Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from appraisal.models.member import MemberRole

Permission = tuple[str, str]


class RoleConstraint(str, enum.Enum):
    """How a member's roles are matched against a requirement."""

    any = "any"
    all = "all"


class PermissionRequirement(BaseModel):
    """
    Who may perform one action.

    When ``requires_owner`` is set only the organization owner qualifies and
    ``roles`` is ignored.
    """

    model_config = ConfigDict(frozen=True)

    roles: frozenset[str] = frozenset()
    role_constraint: RoleConstraint = RoleConstraint.any
    requires_owner: bool = False


class Membership(BaseModel):
    """An actor's resolved standing in one organization."""

    model_config = ConfigDict(frozen=True)

    organization_id: UUID | None = None
    user_id: UUID | None = None
    member_id: UUID | None = None
    roles: frozenset[str] = frozenset()
    is_owner: bool = False
    active: bool = False

    @classmethod
    def empty(cls) -> Membership:
        """The default-deny membership: no roles, not an owner, not active."""
        return cls()

    @property
    def effective_roles(self) -> frozenset[str]:
        return self.roles if self.active else frozenset()

    @property
    def effective_owner(self) -> bool:
        return self.active and self.is_owner


class PermissionTable:
    """Immutable ``area -> action -> PermissionRequirement`` mapping."""

    def __init__(self, areas: Mapping[str, Mapping[str, PermissionRequirement]]) -> None:
        self._areas = MappingProxyType(
            {area: MappingProxyType(dict(actions)) for area, actions in areas.items()}
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Mapping[str, object]]]) -> PermissionTable:
        """
        Build a table from plain data, e.g. parsed JSON::

            {"organization": {"delete_org": {"roles": [], "requires_owner": true}}}

        Raises:
            ValueError: On unknown roles or role constraints.
        """
        valid_roles = {role.value for role in MemberRole}
        areas: dict[str, dict[str, PermissionRequirement]] = {}
        for area, actions in raw.items():
            areas[area] = {}
            for action, rule in actions.items():
                roles = frozenset(rule.get("roles", []))
                unknown = roles - valid_roles
                if unknown:
                    raise ValueError(f"Unknown roles for {area}:{action}: {sorted(unknown)}")
                areas[area][action] = PermissionRequirement(
                    roles=roles,
                    role_constraint=RoleConstraint(rule.get("role_constraint", "any")),
                    requires_owner=bool(rule.get("requires_owner", False)),
                )
        return cls(areas)

    def get(self, area: str, action: str) -> PermissionRequirement | None:
        actions = self._areas.get(area)
        if actions is None:
            return None
        return actions.get(action)

    def items(self) -> Iterable[tuple[Permission, PermissionRequirement]]:
        for area, actions in self._areas.items():
            for action, requirement in actions.items():
                yield (area, action), requirement

    def __contains__(self, permission: object) -> bool:
        if not isinstance(permission, tuple) or len(permission) != 2:
            return False
        return self.get(*permission) is not None


_ALL_MEMBER_ROLES = ["owner", "admin", "manager", "appraiser"]
_ADMIN_ROLES = ["owner", "admin"]

DEFAULT_PERMISSIONS: dict[str, dict[str, dict[str, object]]] = {
    "organization": {
        "view_org": {"roles": _ALL_MEMBER_ROLES},
        "edit_org": {"roles": _ADMIN_ROLES},
        "delete_org": {"roles": [], "requires_owner": True},
        "transfer_org": {"roles": [], "requires_owner": True},
    },
    "members": {
        "view_member_details": {"roles": ["owner", "admin", "manager"]},
        "edit_members": {"roles": _ADMIN_ROLES},
        "create_invitation": {"roles": _ADMIN_ROLES},
        "update_invitation": {"roles": _ADMIN_ROLES},
        "cancel_invitation": {"roles": _ADMIN_ROLES},
    },
    "orders": {
        "view_orders": {"roles": _ALL_MEMBER_ROLES},
        "create_order": {"roles": _ALL_MEMBER_ROLES},
        "edit_order": {"roles": _ALL_MEMBER_ROLES},
        "delete_order": {"roles": ["owner", "admin", "manager"]},
    },
}


def load_permission_table(path: str | None = None) -> PermissionTable:
    """Load the table from a JSON file, or the built-in defaults."""
    if path is None:
        return PermissionTable.from_mapping(DEFAULT_PERMISSIONS)
    return PermissionTable.from_mapping(json.loads(Path(path).read_text(encoding="utf-8")))


@lru_cache(maxsize=1)
def get_permission_table() -> PermissionTable:
    """Process-wide table, built on first use from settings."""
    from appraisal.core.config import settings

    return load_permission_table(settings.PERMISSIONS_FILE)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _satisfies(membership: Membership, requirement: PermissionRequirement) -> bool:
    if requirement.requires_owner:
        return membership.effective_owner
    if not requirement.roles or not membership.active:
        return False

    shared = requirement.roles & membership.effective_roles
    if requirement.role_constraint is RoleConstraint.all:
        return len(shared) == len(requirement.roles)
    return len(shared) > 0


def user_can(
    membership: Membership,
    area: str,
    action: str,
    table: PermissionTable,
) -> bool:
    """Whether ``membership`` may perform ``action`` in ``area``."""
    requirement = table.get(area, action)
    if requirement is None:
        return False
    return _satisfies(membership, requirement)


def get_user_permissions(membership: Membership, table: PermissionTable) -> frozenset[Permission]:
    """Every (area, action) pair ``membership`` is allowed to perform."""
    return frozenset(
        permission
        for permission, requirement in table.items()
        if _satisfies(membership, requirement)
    )


def format_permission(permission: Permission) -> str:
    area, action = permission
    return f"{area}:{action}"
