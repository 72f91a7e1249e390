"""
Membership resolution for authorization decisions.

Everything here fails closed: a missing, inactive or unreadable membership
becomes Membership.empty(), which the engine denies.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from appraisal.core.config import settings
from appraisal.core.permissions import (
    Membership,
    Permission,
    PermissionTable,
    get_user_permissions,
    user_can,
)
from appraisal.models.member import OrgMember
from appraisal.repositories.membership import MembershipStore

logger = logging.getLogger(__name__)


def membership_from_member(member: OrgMember | None) -> Membership:
    if member is None:
        return Membership.empty()
    return Membership(
        organization_id=member.organization_id,
        user_id=member.user_id,
        member_id=member.id,
        roles=frozenset(member.roles or []),
        is_owner=bool(member.is_owner),
        active=bool(member.active),
    )


async def resolve_membership(
    store: MembershipStore,
    organization_id: UUID,
    user_id: UUID | None,
    timeout: float | None = None,
) -> Membership:
    """Load the actor's membership, or Membership.empty() on absence, error or timeout."""
    if user_id is None:
        return Membership.empty()
    try:
        member = await asyncio.wait_for(
            store.find_membership(organization_id, user_id),
            timeout=timeout or settings.MEMBERSHIP_LOOKUP_TIMEOUT_SECONDS,
        )
    except Exception:
        logger.exception(
            "Membership lookup failed for organization_id=%s user_id=%s; denying",
            organization_id,
            user_id,
        )
        return Membership.empty()
    return membership_from_member(member)


class PermissionService:
    """Answers authorization questions for one organization."""

    def __init__(self, store: MembershipStore, table: PermissionTable) -> None:
        self.store = store
        self.table = table

    async def get_user_permissions(self, organization_id: UUID, user_id: UUID | None) -> frozenset[Permission]:
        membership = await resolve_membership(self.store, organization_id, user_id)
        return get_user_permissions(membership, self.table)

    async def user_can(self, organization_id: UUID, user_id: UUID | None, area: str, action: str) -> bool:
        membership = await resolve_membership(self.store, organization_id, user_id)
        return user_can(membership, area, action, self.table)
