"""
Invite page coordination with the identity provider.

A visitor who opens an invite link while already signed in may be signed in
as somebody else. Before such a visitor can accept, the page logs them out
and brings them back to the same link. The provider only redirects to
allow-listed URLs, so the return URL is registered first and removed again
on the return visit.

Provider trouble never breaks the page: if the return URL cannot be
registered the forced logout is skipped, and a failed removal is only
logged.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from appraisal.auth.provider import IdentityProvider, Session
from appraisal.core.config import settings
from appraisal.core.errors import ProviderError
from appraisal.models.invitation import InvitationStatus
from appraisal.schemas.invitation import PublicInvitationResponse
from appraisal.services.invitation_service import InvitationService, invite_url

logger = logging.getLogger(__name__)

INVALID_INVITE_MESSAGE = (
    "We're sorry. This link is not valid. If you were invited to join an "
    "organization, the link may have expired. Please contact the owner of "
    "the organization."
)


class InvitePageState(str, enum.Enum):
    invalid = "invalid"
    logout_redirect = "logout_redirect"
    login_required = "login_required"
    ready = "ready"


class InvitePageDecision(BaseModel):
    """What the invite page should do for this visit."""

    model_config = ConfigDict(frozen=True)

    state: InvitePageState
    invitation: PublicInvitationResponse | None = None
    redirect_url: str | None = None
    login_url: str | None = None
    message: str | None = None


def logout_return_url(organization_id: UUID, token: str) -> str:
    """The exact URL registered with the provider for the post-logout return."""
    return f"{invite_url(organization_id, token).absolute}&redirect=true"


class IdentityRedirectCoordinator:
    """Decides between logout, login and showing the invite."""

    def __init__(
        self,
        invitations: InvitationService,
        provider: IdentityProvider,
        timeout: float | None = None,
    ) -> None:
        self.invitations = invitations
        self.provider = provider
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    async def prepare_invite_page(
        self,
        organization_id: UUID,
        token: str | None,
        redirect: bool,
        registered: bool,
        session: Session,
    ) -> InvitePageDecision:
        invitation = None
        if token:
            invitation = await self.invitations.lookup(
                organization_id, token, status_filter=InvitationStatus.pending
            )
        if invitation is None:
            return InvitePageDecision(state=InvitePageState.invalid, message=INVALID_INVITE_MESSAGE)

        return_url = logout_return_url(organization_id, token)

        if session.is_authenticated and not registered:
            if await self._register(return_url):
                return InvitePageDecision(
                    state=InvitePageState.logout_redirect,
                    invitation=invitation,
                    redirect_url=self.provider.logout_url(return_url),
                )
        elif redirect:
            await self._deregister(return_url)

        if not session.is_authenticated:
            local = invite_url(organization_id, token).local
            return InvitePageDecision(
                state=InvitePageState.login_required,
                invitation=invitation,
                login_url=self.provider.login_url(f"{local}&registered=true", register=True),
            )

        return InvitePageDecision(state=InvitePageState.ready, invitation=invitation)

    async def _register(self, url: str) -> bool:
        try:
            return await asyncio.wait_for(
                self.provider.add_allowed_redirect_urls([url]), timeout=self.timeout
            )
        except (ProviderError, TimeoutError) as exc:
            logger.warning("Could not allow-list %s; skipping forced logout: %s", url, exc)
        except Exception:
            logger.exception("Unexpected error allow-listing %s; skipping forced logout", url)
        return False

    async def _deregister(self, url: str) -> None:
        try:
            removed = await asyncio.wait_for(
                self.provider.remove_allowed_redirect_url(url), timeout=self.timeout
            )
        except (ProviderError, TimeoutError) as exc:
            logger.warning("Could not remove %s from the allow-list: %s", url, exc)
            return
        except Exception:
            logger.exception("Unexpected error removing %s from the allow-list", url)
            return
        if not removed:
            logger.warning("Provider refused to remove %s from the allow-list", url)
