"""
Invitation notifications.

Queues email tasks. Delivery is best-effort: a failure to enqueue is logged
and never reaches the caller, so it cannot undo the invitation change that
triggered it.
"""

from __future__ import annotations

import logging

from appraisal.core.config import settings
from appraisal.models.invitation import OrgInvitation
from appraisal.models.organization import Organization
from appraisal.models.user import User

logger = logging.getLogger(__name__)


class NotificationSender:
    """Fire-and-forget invitation emails."""

    def send_invite_created(
        self,
        invitation: OrgInvitation,
        organization: Organization,
        inviter: User,
        invite_link: str,
        token: str,
    ) -> bool:
        from appraisal.workers.email_tasks import send_invitation_email

        try:
            send_invitation_email.delay(
                to_email=invitation.invitee_email,
                invitee_name=invitation.invitee_name,
                org_name=organization.name,
                inviter_name=inviter.full_name or inviter.email,
                invite_link=invite_link,
                invitation_token=token,
                expiry_days=settings.ORG_INVITE_EXPIRY_DAYS,
            )
        except Exception as exc:
            logger.warning(
                "Could not queue invitation email for invitation_id=%s: %s",
                invitation.id,
                exc,
            )
            return False
        return True

    def send_invite_resolved(
        self,
        invitation: OrgInvitation,
        organization: Organization,
        inviter: User | None,
        status: str,
    ) -> bool:
        if inviter is None or not inviter.email:
            logger.info("Inviter has no email; skipping notice for invitation_id=%s", invitation.id)
            return False

        from appraisal.workers.email_tasks import send_invitation_resolved_email

        try:
            send_invitation_resolved_email.delay(
                to_email=inviter.email,
                inviter_first_name=inviter.first_name or "",
                invitee_name=invitation.invitee_name or invitation.invitee_email,
                org_name=organization.name,
                status=status,
            )
        except Exception as exc:
            logger.warning(
                "Could not queue %s notice for invitation_id=%s: %s",
                status,
                invitation.id,
                exc,
            )
            return False
        return True
