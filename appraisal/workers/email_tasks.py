"""
Email background tasks.

Invitation emails and invitation-outcome notices to the inviter.
"""

from __future__ import annotations

from html import escape

from appraisal.core.config import settings
from appraisal.workers.celery_app import celery_app


def _deliver(to_email: str, subject: str, html: str, headers: dict[str, str] | None = None) -> dict[str, str]:
    import resend

    resend.api_key = settings.RESEND_API_KEY
    params: resend.Emails.SendParams = {
        "from": settings.EMAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    if headers:
        params["headers"] = headers
    response = resend.Emails.send(params)
    return {"status": "sent", "message_id": response["id"]}


def resolution_message(
    status: str,
    invitee_name: str,
    org_name: str | None,
    short: bool = False,
) -> str:
    """Sentence telling an inviter what happened to their invitation."""
    org = org_name or "your organization"
    if status == "accepted":
        if short:
            return f"{invitee_name} has accepted your invitation"
        return f"{invitee_name} has accepted your invitation to join {org}."
    if status == "declined":
        if short:
            return f"{invitee_name} has declined your invitation"
        return f"{invitee_name} has declined your invitation to join {org}."
    if status == "expired":
        if short:
            return f"Your invitation to {invitee_name} has expired"
        return f"Your invitation to {invitee_name} to join {org} has expired."
    return ""


@celery_app.task(name="appraisal.workers.email_tasks.send_invitation_email", bind=True, max_retries=3)
def send_invitation_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    invitee_name: str,
    org_name: str,
    inviter_name: str,
    invite_link: str,
    invitation_token: str,
    expiry_days: int,
) -> dict[str, str]:
    """
    Send an invitation email via Resend.

    Args:
        to_email: Recipient email address.
        invitee_name: Full name of the invited person.
        org_name: Organization display name.
        inviter_name: Display name of the person who sent the invite.
        invite_link: Absolute URL of the invite page.
        invitation_token: Token, echoed in the X-Entity-Ref-ID header.
        expiry_days: Days until the link stops working.

    Returns:
        Dict with status and message_id.
    """
    html = f"""
        <h2>Hi {escape(invitee_name)},</h2>
        <p><strong>{escape(inviter_name)}</strong> has invited you to join
        <strong>{escape(org_name)}</strong>.</p>
        <p>
            <a href="{escape(invite_link)}"
               style="background:#111827;color:#fff;padding:12px 24px;
                      border-radius:6px;text-decoration:none;display:inline-block;">
                Join organization
            </a>
        </p>
        <p>This invitation expires in {expiry_days} days.</p>
        <p>If you did not expect this invitation, you can safely ignore this email.</p>
    """
    try:
        return _deliver(
            to_email,
            "You've been invited to join an organization",
            html,
            headers={"X-Entity-Ref-ID": f"org-invite/{invitation_token}"},
        )
    except Exception as exc:
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


@celery_app.task(name="appraisal.workers.email_tasks.send_invitation_resolved_email", bind=True, max_retries=3)
def send_invitation_resolved_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    inviter_first_name: str,
    invitee_name: str,
    org_name: str,
    status: str,
) -> dict[str, str]:
    """
    Tell the inviter that their invitation was accepted, declined or expired.

    Returns:
        Dict with status and message_id.
    """
    html = f"""
        <p>Hi {escape(inviter_first_name)},</p>
        <p>{escape(resolution_message(status, invitee_name, org_name))}</p>
    """
    try:
        return _deliver(to_email, resolution_message(status, invitee_name, org_name, short=True), html)
    except Exception as exc:
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
