"""
Invitation endpoints.

Managing invitations requires the matching members permission. Looking up
an invitation by token and declining it are public; accepting requires an
authenticated session.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from appraisal.auth.provider import Session
from appraisal.core.dependencies import (
    OrgContext,
    get_notifier,
    get_org_context,
    get_organization_store,
    get_permissions,
    get_session,
    get_store,
)
from appraisal.core.errors import ErrorCode, not_authenticated, not_found
from appraisal.core.permissions import PermissionTable
from appraisal.models.invitation import InvitationStatus
from appraisal.repositories.membership import MembershipStore
from appraisal.repositories.organization import OrganizationStore
from appraisal.schemas.invitation import (
    InvitationResponse,
    InviteRequest,
    InviteUpdateRequest,
    JoinRequest,
    JoinResponse,
    PublicInvitationResponse,
)
from appraisal.services.invitation_service import (
    INVALID_LINK_MESSAGE,
    InvitationService,
    JoinOutcome,
)
from appraisal.services.notification_service import NotificationSender

router = APIRouter()


def get_invitation_service(
    store: MembershipStore = Depends(get_store),
    organizations: OrganizationStore = Depends(get_organization_store),
    table: PermissionTable = Depends(get_permissions),
    notifier: NotificationSender = Depends(get_notifier),
) -> InvitationService:
    """Dependency that constructs InvitationService."""
    return InvitationService(store=store, organizations=organizations, table=table, notifier=notifier)


# ---------------------------------------------------------------------------
# Create / Update / Cancel
# ---------------------------------------------------------------------------

@router.post(
    "/{organization_id}/invite",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a new member",
)
async def create_invitation(
    data: InviteRequest,
    context: OrgContext = Depends(get_org_context),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationResponse:
    """
    Invite someone to the organization by email.

    - Requires the owner or admin role
    - Sends the invitation email via Celery
    - The link expires after ORG_INVITE_EXPIRY_DAYS days
    """
    return await service.create(context.organization_id, context.membership, context.user, data)


@router.put(
    "/{organization_id}/invite/{invite_id}",
    response_model=InvitationResponse,
    summary="Update a pending invitation",
)
async def update_invitation(
    invite_id: UUID,
    data: InviteUpdateRequest,
    context: OrgContext = Depends(get_org_context),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationResponse:
    return await service.update(context.organization_id, invite_id, context.membership, data)


@router.delete(
    "/{organization_id}/invite/{invite_id}",
    status_code=status.HTTP_200_OK,
    summary="Cancel a pending invitation",
)
async def cancel_invitation(
    invite_id: UUID,
    context: OrgContext = Depends(get_org_context),
    service: InvitationService = Depends(get_invitation_service),
) -> dict:
    await service.cancel(context.organization_id, invite_id, context.membership)
    return {"message": "Invitation cancelled."}


# ---------------------------------------------------------------------------
# Public Lookup
# ---------------------------------------------------------------------------

@router.get(
    "/{organization_id}/invite",
    response_model=PublicInvitationResponse,
    summary="Look up an invitation by token",
)
async def lookup_invitation(
    organization_id: UUID,
    token: str = Query(..., min_length=1, max_length=255),
    status_filter: InvitationStatus | None = Query(None, alias="status"),
    service: InvitationService = Depends(get_invitation_service),
) -> PublicInvitationResponse:
    """No authentication required. Unknown and foreign tokens both return 404."""
    invitation = await service.lookup(organization_id, token, status_filter)
    if invitation is None:
        raise not_found(INVALID_LINK_MESSAGE)
    return invitation


# ---------------------------------------------------------------------------
# Join (accept / decline)
# ---------------------------------------------------------------------------

@router.post(
    "/{organization_id}/join",
    response_model=JoinResponse,
    summary="Accept or decline an invitation",
)
async def join_organization(
    organization_id: UUID,
    data: JoinRequest,
    session: Session = Depends(get_session),
    store: MembershipStore = Depends(get_store),
    service: InvitationService = Depends(get_invitation_service),
):
    """
    Resolve an invitation.

    Accepting requires a signed-in user; declining does not. Unknown,
    expired and already-used links all get the same 404 so the response
    reveals nothing about the invitation.
    """
    if data.status == "accepted":
        account = session.current_user()
        if account is None:
            raise not_authenticated()
        user = await store.get_or_create_user(
            account_id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
        )
        result = await service.accept(organization_id, data.token, user)
    else:
        result = await service.decline(organization_id, data.token)

    if not result.succeeded:
        # Returned rather than raised so a lazy expiry write is committed.
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": {"code": ErrorCode.NOT_FOUND.value, "message": INVALID_LINK_MESSAGE}},
        )

    if result.outcome is JoinOutcome.accepted:
        return JoinResponse(
            status=InvitationStatus.accepted.value,
            message="You have joined the organization.",
            member_id=result.member.id,
        )
    return JoinResponse(status=InvitationStatus.declined.value, message="Invitation declined.")
