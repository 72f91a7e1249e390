"""
Kinde identity provider tests.

The management API is served by an httpx MockTransport; the token cache is
an in-memory stand-in for Redis.
"""

import json

import httpx
import pytest

from conftest import FakeRedis, make_token
from appraisal.auth.provider import ANONYMOUS, KindeIdentityProvider
from appraisal.core.errors import ProviderError

DOMAIN = "https://example.kinde.com"
LOGOUT_URLS_PATH = "/api/v1/applications/app_123/auth_logout_urls"
RETURN_URL = "https://app.example.com/organization-invite/1/join?inv=tok&redirect=true"


class ManagementApi:
    """Records requests and answers them from a status table."""

    def __init__(self, logout_urls_status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.logout_urls_status = logout_urls_status
        self.token_requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth2/token":
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "m2m-token", "expires_in": 3600})
        if request.url.path == LOGOUT_URLS_PATH:
            return httpx.Response(self.logout_urls_status, json={})
        return httpx.Response(404)


def make_provider(handler) -> tuple[KindeIdentityProvider, FakeRedis]:
    redis = FakeRedis()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = KindeIdentityProvider(redis, client=client)
    provider.domain = DOMAIN
    provider.application_id = "app_123"
    return provider, redis


async def test_add_posts_urls_with_management_token():
    api = ManagementApi()
    provider, redis = make_provider(api)

    assert await provider.add_allowed_redirect_urls([RETURN_URL]) is True

    token_request, add_request = api.requests
    assert token_request.method == "POST"
    assert b"grant_type=client_credentials" in token_request.content
    assert add_request.method == "POST"
    assert add_request.url.path == LOGOUT_URLS_PATH
    assert add_request.headers["Authorization"] == "Bearer m2m-token"
    assert json.loads(add_request.content) == {"urls": [RETURN_URL]}
    assert redis.data[KindeIdentityProvider.M2M_TOKEN_KEY] == "m2m-token"
    assert redis.ttls[KindeIdentityProvider.M2M_TOKEN_KEY] == 3540


async def test_management_token_is_cached():
    api = ManagementApi()
    provider, _ = make_provider(api)

    await provider.add_allowed_redirect_urls([RETURN_URL])
    await provider.remove_allowed_redirect_url(RETURN_URL)

    assert api.token_requests == 1


async def test_remove_sends_url_as_query_param():
    api = ManagementApi()
    provider, _ = make_provider(api)

    assert await provider.remove_allowed_redirect_url(RETURN_URL) is True

    remove_request = api.requests[-1]
    assert remove_request.method == "DELETE"
    assert remove_request.url.params["urls"] == RETURN_URL


async def test_remove_of_absent_url_succeeds():
    provider, _ = make_provider(ManagementApi(logout_urls_status=404))
    assert await provider.remove_allowed_redirect_url(RETURN_URL) is True


@pytest.mark.parametrize("status_code", [400, 500])
async def test_rejected_calls_return_false(status_code):
    provider, _ = make_provider(ManagementApi(logout_urls_status=status_code))

    assert await provider.add_allowed_redirect_urls([RETURN_URL]) is False
    assert await provider.remove_allowed_redirect_url(RETURN_URL) is False


async def test_transport_error_raises_provider_error():
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider, redis = make_provider(unreachable)
    redis.data[KindeIdentityProvider.M2M_TOKEN_KEY] = "cached-token"

    with pytest.raises(ProviderError):
        await provider.add_allowed_redirect_urls([RETURN_URL])


async def test_failed_token_request_raises_provider_error():
    provider, _ = make_provider(lambda request: httpx.Response(401, json={"error": "invalid_client"}))

    with pytest.raises(ProviderError):
        await provider.add_allowed_redirect_urls([RETURN_URL])


def test_session_for_valid_token():
    provider, _ = make_provider(ManagementApi())

    session = provider.session_for(make_token("kp_ivy", "ivy@example.com", "Ivy", "Invitee"))

    assert session.is_authenticated
    assert session.current_user().id == "kp_ivy"
    assert session.current_user().first_name == "Ivy"


@pytest.mark.parametrize("token", [None, "", "garbage"])
def test_session_for_bad_token_is_anonymous(token):
    provider, _ = make_provider(ManagementApi())
    assert provider.session_for(token) is ANONYMOUS


def test_expired_token_is_anonymous():
    provider, _ = make_provider(ManagementApi())
    assert provider.session_for(make_token("kp_ivy", "ivy@example.com", expires_in=-60)) is ANONYMOUS


def test_login_and_logout_urls_encode_return_target():
    provider, _ = make_provider(ManagementApi())
    provider.site_url = "https://app.example.com"

    assert provider.logout_url(RETURN_URL).startswith(
        "https://app.example.com/api/auth/logout?post_logout_redirect_url=https%3A%2F%2F"
    )
    assert "/api/auth/register?" in provider.login_url("/x", register=True)
    assert "/api/auth/login?" in provider.login_url("/x")
