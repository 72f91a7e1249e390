"""
Organization management endpoints.

Create, update, delete, permissions, member management and ownership transfer.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from appraisal.core.dependencies import (
    OrgContext,
    get_current_user,
    get_org_context,
    get_organization_store,
    get_permissions,
    get_store,
    require_permission,
)
from appraisal.core.errors import forbidden
from appraisal.core.permissions import PermissionTable
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
from appraisal.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(
    organizations: OrganizationStore = Depends(get_organization_store),
    members: MembershipStore = Depends(get_store),
    table: PermissionTable = Depends(get_permissions),
) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(organizations=organizations, members=members, table=table)


# ---------------------------------------------------------------------------
# Create / List Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    - Creator is automatically made owner with the owner and admin roles
    """
    return await service.create_organization(data, current_user)


@router.get(
    "",
    response_model=OrganizationsListResponse,
    summary="List the current user's organizations",
)
async def list_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationsListResponse:
    return await service.list_organizations(current_user)


# ---------------------------------------------------------------------------
# Get / Update / Delete Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{organization_id}",
    response_model=OrganizationResponse,
    summary="Get organization",
)
async def get_organization(
    context: OrgContext = Depends(require_permission("organization", "view_org")),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.get_organization(context.organization_id)


@router.patch(
    "/{organization_id}",
    response_model=OrganizationResponse,
    summary="Update organization name or avatar",
)
async def update_organization(
    data: OrganizationUpdateRequest,
    context: OrgContext = Depends(require_permission("organization", "edit_org")),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.update_organization(context.organization_id, data)


@router.delete(
    "/{organization_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete organization",
)
async def delete_organization(
    context: OrgContext = Depends(require_permission("organization", "delete_org")),
    service: OrganizationService = Depends(get_org_service),
) -> dict:
    """Delete the organization with all members and invitations. Owner only."""
    await service.delete_organization(context.organization_id)
    return {"message": "Organization deleted successfully."}


@router.get(
    "/{organization_id}/permissions",
    response_model=PermissionsResponse,
    summary="List the current user's permissions",
)
async def get_permissions_for_user(
    context: OrgContext = Depends(get_org_context),
    service: OrganizationService = Depends(get_org_service),
) -> PermissionsResponse:
    """Non-members receive an empty list."""
    return service.get_permissions(context.organization_id, context.membership)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{organization_id}/members",
    response_model=MembersListResponse,
    summary="List organization members",
)
async def list_members(
    context: OrgContext = Depends(require_permission("organization", "view_org")),
    service: OrganizationService = Depends(get_org_service),
) -> MembersListResponse:
    return await service.list_members(context.organization_id)


@router.get(
    "/{organization_id}/members/{member_id}",
    response_model=MemberResponse,
    summary="Get member details",
)
async def get_member(
    member_id: UUID,
    context: OrgContext = Depends(require_permission("members", "view_member_details")),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    return await service.get_member(context.organization_id, member_id)


@router.patch(
    "/{organization_id}/members/{member_id}",
    response_model=MemberResponse,
    summary="Update member roles or status",
)
async def update_member(
    member_id: UUID,
    data: MemberUpdateRequest,
    context: OrgContext = Depends(require_permission("members", "edit_members")),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    return await service.update_member(context.organization_id, member_id, data, context.membership)


@router.post(
    "/{organization_id}/leave",
    response_model=MemberResponse,
    summary="Leave organization",
)
async def leave_organization(
    context: OrgContext = Depends(get_org_context),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    """Deactivate your own membership. The only owner cannot leave."""
    if not context.membership.active:
        raise forbidden("Unauthorized to leave this organization.")
    return await service.leave(context.organization_id, context.membership)


@router.post(
    "/{organization_id}/transfer-ownership",
    response_model=TransferOwnershipResponse,
    summary="Transfer ownership to another member",
)
async def transfer_ownership(
    data: TransferOwnershipRequest,
    context: OrgContext = Depends(require_permission("organization", "transfer_org")),
    service: OrganizationService = Depends(get_org_service),
) -> TransferOwnershipResponse:
    return await service.transfer_ownership(context.organization_id, context.membership, data)
