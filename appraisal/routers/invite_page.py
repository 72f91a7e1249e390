"""
Invite landing page.

Serves the view model for the page an invite link opens, or redirects the
browser through the identity provider's logout first.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from appraisal.auth.provider import IdentityProvider, Session
from appraisal.core.dependencies import get_identity_provider, get_session
from appraisal.routers.invitations import get_invitation_service
from appraisal.schemas.invitation import InvitePageResponse
from appraisal.services.invitation_service import InvitationService
from appraisal.services.redirect_coordinator import (
    IdentityRedirectCoordinator,
    InvitePageState,
)

router = APIRouter()


def get_redirect_coordinator(
    invitations: InvitationService = Depends(get_invitation_service),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> IdentityRedirectCoordinator:
    return IdentityRedirectCoordinator(invitations=invitations, provider=provider)


@router.get(
    "/organization-invite/{organization_id}/join",
    response_model=InvitePageResponse,
    summary="Invite page",
    responses={status.HTTP_307_TEMPORARY_REDIRECT: {"description": "Forced logout before joining"}},
)
async def invite_page(
    organization_id: UUID,
    inv: str | None = Query(None, max_length=255),
    redirect: bool = Query(False),
    registered: bool = Query(False),
    session: Session = Depends(get_session),
    coordinator: IdentityRedirectCoordinator = Depends(get_redirect_coordinator),
):
    """
    Decide what the invite page shows.

    - invalid: the link is unknown, used or expired
    - 307: the visitor is signed in and must log out and come back
    - login_required: the visitor must register or sign in first
    - ready: the visitor may accept or decline
    """
    decision = await coordinator.prepare_invite_page(
        organization_id,
        inv,
        redirect=redirect,
        registered=registered,
        session=session,
    )

    if decision.state is InvitePageState.logout_redirect:
        return RedirectResponse(decision.redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    return InvitePageResponse(
        state=decision.state.value,
        message=decision.message,
        logged_in=session.is_authenticated,
        invitation=decision.invitation,
        login_url=decision.login_url,
        token=inv if decision.state is InvitePageState.ready else None,
    )
