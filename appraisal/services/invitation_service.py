"""
Invitation lifecycle.

An invitation moves ``pending -> accepted | declined | expired`` and never
leaves a terminal state. Expiry is observed, not scheduled: a pending
invitation past its expiry stays ``pending`` in storage until its token is
used, at which point it is moved to ``expired``.

Accept/decline outcomes are returned as JoinResult values. Management
operations (create, update, cancel) raise HTTPExceptions like the rest of
the service layer.
"""

from __future__ import annotations

import enum
import logging
from urllib.parse import quote
from uuid import UUID

from fastapi import status
from pydantic import BaseModel, ConfigDict

from appraisal.core.config import settings
from appraisal.core.errors import ErrorCode, api_error, forbidden, not_found
from appraisal.core.permissions import Membership, PermissionTable, user_can
from appraisal.core.security import generate_expiry, generate_invite_token, is_expired
from appraisal.models.invitation import InvitationStatus, OrgInvitation
from appraisal.models.member import OrgMember
from appraisal.models.user import User
from appraisal.repositories.membership import MembershipStore
from appraisal.repositories.organization import OrganizationStore
from appraisal.schemas.invitation import (
    InvitationResponse,
    InviteRequest,
    InviteUpdateRequest,
    PublicInvitationResponse,
    PublicInviter,
    PublicOrganization,
)
from appraisal.services.notification_service import NotificationSender

logger = logging.getLogger(__name__)

INVALID_LINK_MESSAGE = "This invitation link is not valid."


class JoinOutcome(str, enum.Enum):
    accepted = "accepted"
    declined = "declined"
    not_found = "not_found"
    expired = "expired"
    already_resolved = "already_resolved"


class JoinResult(BaseModel):
    """Outcome of an accept or decline attempt."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    outcome: JoinOutcome
    invitation: OrgInvitation | None = None
    member: OrgMember | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (JoinOutcome.accepted, JoinOutcome.declined)


class InviteUrl(BaseModel):
    model_config = ConfigDict(frozen=True)

    local: str
    absolute: str


def invite_url(organization_id: UUID, token: str) -> InviteUrl:
    """Link to the invite page for ``token``."""
    path = f"/organization-invite/{organization_id}/join?inv={quote(token, safe='')}"
    return InviteUrl(local=path, absolute=f"{settings.SITE_BASE_URL.rstrip('/')}{path}")


class InvitationService:
    """Creates, updates, resolves and cancels organization invitations."""

    def __init__(
        self,
        store: MembershipStore,
        organizations: OrganizationStore,
        table: PermissionTable,
        notifier: NotificationSender,
    ) -> None:
        self.store = store
        self.organizations = organizations
        self.table = table
        self.notifier = notifier

    def _authorize(self, organization_id: UUID, actor: Membership, action: str) -> None:
        if actor.organization_id != organization_id or not user_can(actor, "members", action, self.table):
            raise forbidden()

    # -----------------------------------------------------------------------
    # Create Invitation
    # -----------------------------------------------------------------------

    async def create(
        self,
        organization_id: UUID,
        actor: Membership,
        inviter: User,
        data: InviteRequest,
    ) -> InvitationResponse:
        """
        Invite someone to the organization.

        - Requires members:create_invitation
        - Rejects a second open invitation for the same email
        - Issues a random token valid for ORG_INVITE_EXPIRY_DAYS days
        - Queues the invitation email (best-effort)
        """
        self._authorize(organization_id, actor, "create_invitation")

        organization = await self.organizations.find(organization_id)
        if organization is None:
            raise not_found("Organization not found.")

        existing = await self.store.find_pending_invitation_for_email(organization.id, data.email)
        if existing is not None:
            raise api_error(
                status.HTTP_409_CONFLICT,
                ErrorCode.DUPLICATE,
                "A pending invitation already exists for this email.",
            )

        token = generate_invite_token()
        invitation = await self.store.create_invitation(
            organization_id=organization.id,
            invited_by_user_id=inviter.id,
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            roles=data.roles,
            token=token,
            expires=generate_expiry(settings.ORG_INVITE_EXPIRY_DAYS),
        )
        logger.info(
            "Created invitation_id=%s in organization_id=%s by user_id=%s",
            invitation.id,
            organization.id,
            inviter.id,
        )

        self.notifier.send_invite_created(
            invitation,
            organization,
            inviter,
            invite_url(organization.id, token).absolute,
            token,
        )
        return InvitationResponse.model_validate(invitation)

    # -----------------------------------------------------------------------
    # Update Invitation
    # -----------------------------------------------------------------------

    async def update(
        self,
        organization_id: UUID,
        invitation_id: UUID,
        actor: Membership,
        data: InviteUpdateRequest,
    ) -> InvitationResponse:
        """Change the invitee name or roles of an open invitation."""
        self._authorize(organization_id, actor, "update_invitation")

        invitation = await self.store.find_invitation(organization_id, invitation_id)
        if (
            invitation is None
            or invitation.status is not InvitationStatus.pending
            or is_expired(invitation.expires)
        ):
            raise not_found("Invitation not found.")

        invitation = await self.store.update_invitation(
            invitation,
            first_name=data.first_name,
            last_name=data.last_name,
            roles=data.roles,
        )
        return InvitationResponse.model_validate(invitation)

    # -----------------------------------------------------------------------
    # Public Lookup
    # -----------------------------------------------------------------------

    async def lookup(
        self,
        organization_id: UUID,
        token: str,
        status_filter: InvitationStatus | None = None,
    ) -> PublicInvitationResponse | None:
        """
        Public view of the invitation behind ``token``.

        Returns None both for unknown tokens and for tokens belonging to a
        different organization. A pending invitation past its expiry is
        reported as expired.
        """
        invitation = await self.store.find_invitation_by_token(organization_id, token)
        if invitation is None:
            return None

        current = invitation.status
        if current is InvitationStatus.pending and is_expired(invitation.expires):
            current = InvitationStatus.expired
        if status_filter is not None and current is not status_filter:
            return None

        inviter = invitation.invited_by
        return PublicInvitationResponse(
            organization=PublicOrganization(
                name=invitation.organization.name,
                avatar=invitation.organization.avatar,
            ),
            invited_by=PublicInviter(
                first_name=inviter.first_name if inviter else None,
                last_name=inviter.last_name if inviter else None,
            ),
            status=current,
            expires=invitation.expires,
        )

    # -----------------------------------------------------------------------
    # Accept / Decline
    # -----------------------------------------------------------------------

    async def _check_usable(self, organization_id: UUID, token: str) -> tuple[OrgInvitation | None, JoinResult | None]:
        """Load the invitation and return an early result if it cannot be used."""
        invitation = await self.store.find_invitation_by_token(organization_id, token)
        if invitation is None:
            return None, JoinResult(outcome=JoinOutcome.not_found)

        if is_expired(invitation.expires):
            if await self.store.transition_invitation(organization_id, token, InvitationStatus.expired):
                await self.store.refresh_invitation(invitation)
                logger.info("Invitation_id=%s expired on use", invitation.id)
                self._notify_resolved(invitation, InvitationStatus.expired)
            return invitation, JoinResult(outcome=JoinOutcome.expired, invitation=invitation)

        if invitation.status is not InvitationStatus.pending:
            return invitation, JoinResult(outcome=JoinOutcome.already_resolved, invitation=invitation)

        return invitation, None

    async def accept(self, organization_id: UUID, token: str, user: User) -> JoinResult:
        """
        Accept an invitation on behalf of ``user``.

        Only one caller can move a given token out of pending. The winner
        gets an active membership with the invitation roles; an existing
        membership row is reactivated and its roles are unioned.
        """
        invitation, early = await self._check_usable(organization_id, token)
        if early is not None:
            return early

        if not await self.store.transition_invitation(organization_id, token, InvitationStatus.accepted):
            return JoinResult(outcome=JoinOutcome.already_resolved, invitation=invitation)

        member = await self.store.upsert_membership(organization_id, user.id, invitation.roles)
        await self.store.refresh_invitation(invitation)
        logger.info(
            "User_id=%s accepted invitation_id=%s into organization_id=%s",
            user.id,
            invitation.id,
            organization_id,
        )

        self._notify_resolved(invitation, InvitationStatus.accepted)
        return JoinResult(outcome=JoinOutcome.accepted, invitation=invitation, member=member)

    async def decline(self, organization_id: UUID, token: str) -> JoinResult:
        """Decline an invitation. No membership is created."""
        invitation, early = await self._check_usable(organization_id, token)
        if early is not None:
            return early

        if not await self.store.transition_invitation(organization_id, token, InvitationStatus.declined):
            return JoinResult(outcome=JoinOutcome.already_resolved, invitation=invitation)

        await self.store.refresh_invitation(invitation)
        logger.info("Invitation_id=%s declined", invitation.id)

        self._notify_resolved(invitation, InvitationStatus.declined)
        return JoinResult(outcome=JoinOutcome.declined, invitation=invitation)

    def _notify_resolved(self, invitation: OrgInvitation, outcome: InvitationStatus) -> None:
        self.notifier.send_invite_resolved(
            invitation,
            invitation.organization,
            invitation.invited_by,
            outcome.value,
        )

    # -----------------------------------------------------------------------
    # Cancel Invitation
    # -----------------------------------------------------------------------

    async def cancel(self, organization_id: UUID, invitation_id: UUID, actor: Membership) -> None:
        """Delete an invitation that is still pending."""
        self._authorize(organization_id, actor, "cancel_invitation")

        invitation = await self.store.find_invitation(organization_id, invitation_id)
        if invitation is None:
            raise not_found("Invitation not found.")
        if invitation.status is not InvitationStatus.pending:
            raise api_error(
                status.HTTP_409_CONFLICT,
                ErrorCode.ALREADY_RESOLVED,
                "Invitation has already been resolved.",
            )

        await self.store.delete_invitation(invitation.id)
        logger.info("Cancelled invitation_id=%s in organization_id=%s", invitation_id, organization_id)
