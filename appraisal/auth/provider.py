"""
Identity provider integration.

The provider (Kinde) owns accounts and sessions. This module validates its
access tokens and manages the application's logout-redirect allow-list
through the provider's management API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx
import redis.asyncio as aioredis
from jose import JWTError
from pydantic import BaseModel, ConfigDict

from appraisal.core.config import settings
from appraisal.core.errors import ProviderError
from appraisal.core.security import decode_access_token

logger = logging.getLogger(__name__)


class SessionUser(BaseModel):
    """Account details carried by a provider access token."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


class Session(BaseModel):
    """Authentication state of the current request."""

    model_config = ConfigDict(frozen=True)

    user: SessionUser | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def current_user(self) -> SessionUser | None:
        return self.user


ANONYMOUS = Session()


class IdentityProvider(ABC):
    """Contract with the external identity provider."""

    @abstractmethod
    def authenticate(self, access_token: str) -> SessionUser:
        """
        Validate an access token.

        Raises:
            JWTError: If the token is not acceptable.
        """

    @abstractmethod
    async def add_allowed_redirect_urls(self, urls: list[str]) -> bool:
        """Register exact-match logout redirect targets."""

    @abstractmethod
    async def remove_allowed_redirect_url(self, url: str) -> bool:
        """Deregister a logout redirect target. Already-absent counts as success."""

    @abstractmethod
    def login_url(self, return_to: str, register: bool = False) -> str:
        ...

    @abstractmethod
    def logout_url(self, return_to: str) -> str:
        ...

    def session_for(self, access_token: str | None) -> Session:
        """Build the request session; invalid or missing tokens are anonymous."""
        if not access_token:
            return ANONYMOUS
        try:
            return Session(user=self.authenticate(access_token))
        except JWTError as exc:
            logger.info("Rejected provider access token: %s", exc)
            return ANONYMOUS


class KindeIdentityProvider(IdentityProvider):
    """Kinde implementation backed by its management API."""

    M2M_TOKEN_KEY = "identity:m2m_token"

    def __init__(
        self,
        redis: aioredis.Redis,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.domain = settings.IDENTITY_DOMAIN.rstrip("/")
        self.client_id = settings.IDENTITY_CLIENT_ID
        self.client_secret = settings.IDENTITY_CLIENT_SECRET
        self.application_id = settings.IDENTITY_APPLICATION_ID
        self.site_url = settings.SITE_BASE_URL.rstrip("/")
        self.redis = redis
        self._client = client

    # -----------------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------------

    def authenticate(self, access_token: str) -> SessionUser:
        payload = decode_access_token(access_token)
        return SessionUser(
            id=payload["sub"],
            email=payload.get("email") or "",
            first_name=payload.get("given_name"),
            last_name=payload.get("family_name"),
        )

    def login_url(self, return_to: str, register: bool = False) -> str:
        route = "register" if register else "login"
        return f"{self.site_url}/api/auth/{route}?post_login_redirect_url={quote(return_to, safe='')}"

    def logout_url(self, return_to: str) -> str:
        return f"{self.site_url}/api/auth/logout?post_logout_redirect_url={quote(return_to, safe='')}"

    # -----------------------------------------------------------------------
    # Management API
    # -----------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        token = await self._management_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        try:
            if self._client is not None:
                return await self._client.request(method, f"{self.domain}{path}", headers=headers, **kwargs)
            async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS) as client:
                return await client.request(method, f"{self.domain}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{method} {path} failed: {exc}") from exc

    async def _management_token(self) -> str:
        """Client-credentials token for the management API, cached in Redis."""
        cached = await self.redis.get(self.M2M_TOKEN_KEY)
        if cached:
            return cached

        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": f"{self.domain}/api",
        }
        try:
            if self._client is not None:
                response = await self._client.post(f"{self.domain}/oauth2/token", data=data)
            else:
                async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS) as client:
                    response = await client.post(f"{self.domain}/oauth2/token", data=data)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Token request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error("Management token request failed: %s", response.text)
            raise ProviderError(f"Token request failed: {response.status_code}")

        body = response.json()
        token = body["access_token"]
        ttl = max(int(body.get("expires_in", 0)) - 60, 1)
        await self.redis.set(self.M2M_TOKEN_KEY, token, ex=ttl)
        return token

    async def add_allowed_redirect_urls(self, urls: list[str]) -> bool:
        response = await self._request(
            "POST",
            f"/api/v1/applications/{self.application_id}/auth_logout_urls",
            json={"urls": urls},
        )
        if response.is_success:
            return True
        logger.warning(
            "Adding logout redirect URLs failed (%s): %s", response.status_code, response.text
        )
        return False

    async def remove_allowed_redirect_url(self, url: str) -> bool:
        response = await self._request(
            "DELETE",
            f"/api/v1/applications/{self.application_id}/auth_logout_urls",
            params={"urls": url},
        )
        if response.is_success or response.status_code == 404:
            return True
        logger.warning(
            "Removing logout redirect URL failed (%s): %s", response.status_code, response.text
        )
        return False
