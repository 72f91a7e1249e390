"""
Invite page coordination tests.

Walks the signed-in-as-someone-else flow: register the return URL, log out,
come back, deregister, log in, join. Provider failures must degrade to
showing the page, never to an error.
"""

from datetime import timedelta
from urllib.parse import quote

import pytest

from conftest import create_organization, create_user
from appraisal.auth.provider import ANONYMOUS, Session, SessionUser
from appraisal.core.errors import ProviderError
from appraisal.core.security import utcnow
from appraisal.schemas.invitation import InviteRequest
from appraisal.services.invitation_service import invite_url
from appraisal.services.permission_service import membership_from_member
from appraisal.services.redirect_coordinator import (
    INVALID_INVITE_MESSAGE,
    IdentityRedirectCoordinator,
    InvitePageState,
    logout_return_url,
)

SIGNED_IN = Session(user=SessionUser(id="kp_someone", email="someone@example.com"))


@pytest.fixture
async def invite(invitation_service, notifier, store, org_store):
    owner = await create_user(store, "owner")
    organization, owner_member = await create_organization(org_store, store, owner)
    await invitation_service.create(
        organization.id,
        membership_from_member(owner_member),
        owner,
        InviteRequest(first_name="Ivy", last_name="Invitee", email="ivy@x.com", roles=["appraiser"]),
    )
    return organization.id, notifier.last_token


@pytest.fixture
def coordinator(invitation_service, provider) -> IdentityRedirectCoordinator:
    return IdentityRedirectCoordinator(invitations=invitation_service, provider=provider, timeout=0.05)


def test_logout_return_url_is_the_invite_link_with_redirect_flag():
    url = logout_return_url("1234", "tok")
    assert url == "https://app.example.com/organization-invite/1234/join?inv=tok&redirect=true"


async def test_full_switch_account_flow(coordinator, provider, invite):
    org_id, token = invite
    return_url = logout_return_url(org_id, token)

    # Signed in as someone else: register the return URL and force logout.
    first = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=SIGNED_IN)
    assert first.state is InvitePageState.logout_redirect
    assert provider.added == [return_url]
    assert first.redirect_url == provider.logout_url(return_url)
    assert quote(return_url, safe="") in first.redirect_url

    # Back from the provider, logged out: deregister and ask to log in.
    second = await coordinator.prepare_invite_page(org_id, token, redirect=True, registered=False, session=ANONYMOUS)
    assert second.state is InvitePageState.login_required
    assert provider.removed == [return_url]
    assert return_url not in provider.allowed
    expected_return = f"{invite_url(org_id, token).local}&registered=true"
    assert second.login_url == provider.login_url(expected_return, register=True)

    # Back from login: show the invitation.
    third = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=True, session=SIGNED_IN)
    assert third.state is InvitePageState.ready
    assert third.invitation.organization.name == "Acme Appraisals"
    assert len(provider.added) == 1


async def test_anonymous_visitor_is_asked_to_log_in(coordinator, provider, invite):
    org_id, token = invite
    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=ANONYMOUS)

    assert decision.state is InvitePageState.login_required
    assert decision.invitation is not None
    assert provider.added == []
    assert provider.removed == []


async def test_registration_refused_shows_page_without_logout(coordinator, provider, invite):
    provider.add_result = False
    org_id, token = invite

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=SIGNED_IN)

    assert decision.state is InvitePageState.ready
    assert decision.redirect_url is None


async def test_registration_error_shows_page_without_logout(coordinator, provider, invite):
    provider.add_error = ProviderError("management API down")
    org_id, token = invite

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=SIGNED_IN)

    assert decision.state is InvitePageState.ready


async def test_registration_timeout_shows_page_without_logout(coordinator, provider, invite):
    provider.delay = 1.0
    org_id, token = invite

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=SIGNED_IN)

    assert decision.state is InvitePageState.ready
    assert provider.allowed == set()


async def test_deregistration_error_is_tolerated(coordinator, provider, invite):
    provider.remove_error = ProviderError("management API down")
    org_id, token = invite

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=True, registered=False, session=ANONYMOUS)

    assert decision.state is InvitePageState.login_required


@pytest.mark.parametrize("token", [None, "", "not-a-real-token"])
async def test_invalid_token_makes_no_provider_calls(coordinator, provider, invite, token):
    org_id, _ = invite

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=True, registered=False, session=SIGNED_IN)

    assert decision.state is InvitePageState.invalid
    assert decision.message == INVALID_INVITE_MESSAGE
    assert provider.added == []
    assert provider.removed == []


async def test_expired_invitation_is_invalid(coordinator, provider, invite, store, db):
    org_id, token = invite
    invitation = await store.find_invitation_by_token(org_id, token)
    invitation.expires = utcnow() - timedelta(seconds=1)
    await db.flush()

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=False, session=SIGNED_IN)

    assert decision.state is InvitePageState.invalid
    assert provider.added == []


async def test_resolved_invitation_is_invalid(coordinator, invitation_service, invite):
    org_id, token = invite
    await invitation_service.decline(org_id, token)

    decision = await coordinator.prepare_invite_page(org_id, token, redirect=False, registered=True, session=SIGNED_IN)

    assert decision.state is InvitePageState.invalid
