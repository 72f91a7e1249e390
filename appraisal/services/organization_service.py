"""
Organization business logic.

Handles org creation, member management and ownership transfer.
All queries scoped by organization_id. Authorization is enforced by the
router dependencies before these methods run.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import status

from appraisal.core.errors import ErrorCode, api_error, forbidden, invalid_data, not_found
from appraisal.core.permissions import (
    Membership,
    PermissionTable,
    format_permission,
    get_user_permissions,
)
from appraisal.models.member import MemberRole, OrgMember
from appraisal.models.organization import Organization
from appraisal.models.user import User
from appraisal.repositories.membership import MembershipStore
from appraisal.repositories.organization import OrganizationStore
from appraisal.schemas.organization import (
    MemberResponse,
    MembersListResponse,
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationsListResponse,
    OrganizationUpdateRequest,
    PermissionsResponse,
    TransferOwnershipRequest,
    TransferOwnershipResponse,
)

logger = logging.getLogger(__name__)

OWNER = MemberRole.owner.value
ADMIN = MemberRole.admin.value


def member_response(member: OrgMember) -> MemberResponse:
    user = member.user
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        avatar=user.avatar,
        roles=sorted(member.roles),
        is_owner=member.is_owner,
        active=member.active,
        created_at=member.created_at,
    )


class OrganizationService:
    """Handles all organization operations."""

    def __init__(
        self,
        organizations: OrganizationStore,
        members: MembershipStore,
        table: PermissionTable,
    ) -> None:
        self.organizations = organizations
        self.members = members
        self.table = table

    # -----------------------------------------------------------------------
    # Organizations
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, creator: User
    ) -> OrganizationResponse:
        """
        Create a new organization.

        The creator becomes its owner with the owner and admin roles.
        """
        organization = await self.organizations.create(name=data.name, avatar=data.avatar)
        await self.members.upsert_membership(
            organization.id,
            creator.id,
            roles=[OWNER, ADMIN],
            is_owner=True,
        )
        logger.info("User_id=%s created organization_id=%s", creator.id, organization.id)
        return OrganizationResponse.model_validate(organization)

    async def list_organizations(self, user: User) -> OrganizationsListResponse:
        organizations = await self.organizations.list_for_user(user.id)
        return OrganizationsListResponse(
            organizations=[OrganizationResponse.model_validate(org) for org in organizations],
            total=len(organizations),
        )

    async def get_organization(self, organization_id: UUID) -> OrganizationResponse:
        organization = await self._require_organization(organization_id)
        return OrganizationResponse.model_validate(organization)

    async def update_organization(
        self, organization_id: UUID, data: OrganizationUpdateRequest
    ) -> OrganizationResponse:
        organization = await self._require_organization(organization_id)
        if data.name is not None:
            organization.name = data.name.strip()
        if "avatar" in data.model_fields_set:
            organization.avatar = data.avatar
        await self.organizations.save(organization)
        return OrganizationResponse.model_validate(organization)

    async def delete_organization(self, organization_id: UUID) -> None:
        """Delete the organization with its members and invitations."""
        await self._require_organization(organization_id)
        await self.organizations.delete(organization_id)
        logger.info("Deleted organization_id=%s", organization_id)

    async def _require_organization(self, organization_id: UUID) -> Organization:
        organization = await self.organizations.find(organization_id)
        if organization is None:
            raise not_found("Organization not found.")
        return organization

    def get_permissions(self, organization_id: UUID, membership: Membership) -> PermissionsResponse:
        """The caller's allowed actions as sorted ``area:action`` strings."""
        permissions = get_user_permissions(membership, self.table)
        return PermissionsResponse(
            organization_id=organization_id,
            permissions=sorted(format_permission(p) for p in permissions),
        )

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, organization_id: UUID) -> MembersListResponse:
        """List active members of an organization with user details."""
        members = await self.members.list_members(organization_id)
        return MembersListResponse(
            members=[member_response(m) for m in members],
            total=len(members),
        )

    async def get_member(self, organization_id: UUID, member_id: UUID) -> MemberResponse:
        member = await self._require_member(organization_id, member_id)
        return member_response(member)

    async def update_member(
        self,
        organization_id: UUID,
        member_id: UUID,
        data: MemberUpdateRequest,
        actor: Membership,
    ) -> MemberResponse:
        """
        Change a member's roles or deactivate them.

        - The owner role is never granted or removed here
        - Only the owner may change the owner's roles
        - The owner cannot be deactivated
        """
        member = await self._require_member(organization_id, member_id)

        if data.roles is not None and member.is_owner and not actor.effective_owner:
            raise forbidden("Only the owner can change the owner's roles.")

        if data.active is False and member.is_owner:
            raise invalid_data("The owner cannot be deactivated. Transfer ownership first.")

        if data.roles is not None:
            roles = set(data.roles)
            if member.is_owner:
                roles.add(OWNER)
            member.roles = sorted(roles)
        if data.active is not None:
            member.active = data.active

        await self.members.save_member(member)
        logger.info("Updated member_id=%s in organization_id=%s", member_id, organization_id)
        return member_response(member)

    async def leave(self, organization_id: UUID, membership: Membership) -> MemberResponse:
        """Deactivate the caller's own membership."""
        member = await self._require_member(organization_id, membership.member_id)

        owners = await self.members.find_owners(organization_id)
        if len(owners) == 1 and owners[0].id == member.id:
            raise invalid_data(
                "Cannot leave organization. You are the only owner. "
                "Please transfer ownership or delete the organization."
            )

        member.active = False
        await self.members.save_member(member)
        logger.info("Member_id=%s left organization_id=%s", member.id, organization_id)
        return member_response(member)

    async def transfer_ownership(
        self,
        organization_id: UUID,
        membership: Membership,
        data: TransferOwnershipRequest,
    ) -> TransferOwnershipResponse:
        """
        Hand ownership to another active member.

        The new owner receives the owner and admin roles. The previous owner
        loses the owner role and keeps admin only when ``keep_admin_role``
        is set.
        """
        current = await self._require_member(organization_id, membership.member_id)
        if not current.is_owner:
            raise api_error(
                status.HTTP_403_FORBIDDEN,
                ErrorCode.FORBIDDEN,
                "Only the current owner can transfer ownership.",
            )

        target = await self.members.find_member(organization_id, data.new_owner_member_id)
        if target is None or not target.active:
            raise invalid_data("New owner must be an active member of the organization.")
        if target.id == current.id:
            raise invalid_data("Cannot transfer ownership to yourself.")

        removed = {OWNER} if data.keep_admin_role else {OWNER, ADMIN}
        remaining = set(current.roles) - removed
        current.roles = sorted(remaining or {MemberRole.appraiser.value})
        current.is_owner = False
        # Only one active owner may exist at a time.
        await self.members.save_member(current)

        target.roles = sorted(set(target.roles) | {OWNER, ADMIN})
        target.is_owner = True
        await self.members.save_member(target)

        logger.info(
            "Ownership of organization_id=%s moved from member_id=%s to member_id=%s",
            organization_id,
            current.id,
            target.id,
        )
        return TransferOwnershipResponse(
            previous_owner=member_response(current),
            new_owner=member_response(target),
        )

    async def _require_member(self, organization_id: UUID, member_id: UUID | None) -> OrgMember:
        member = None
        if member_id is not None:
            member = await self.members.find_member(organization_id, member_id)
        if member is None:
            raise not_found("Member not found.")
        return member
