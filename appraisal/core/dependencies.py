"""
FastAPI dependency injection functions.

Provides database-backed stores, Redis, the identity provider session,
the current user and permission enforcement.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from appraisal.auth.provider import IdentityProvider, KindeIdentityProvider, Session
from appraisal.core.config import settings
from appraisal.core.database import get_db
from appraisal.core.errors import forbidden, not_authenticated
from appraisal.core.permissions import Membership, PermissionTable, get_permission_table, user_can
from appraisal.models.user import User
from appraisal.repositories.membership import MembershipStore
from appraisal.repositories.organization import OrganizationStore
from appraisal.services.notification_service import NotificationSender
from appraisal.services.permission_service import resolve_membership

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

def get_store(db: AsyncSession = Depends(get_db)) -> MembershipStore:
    return MembershipStore(db)


def get_organization_store(db: AsyncSession = Depends(get_db)) -> OrganizationStore:
    return OrganizationStore(db)


def get_permissions() -> PermissionTable:
    """The process-wide permission table."""
    return get_permission_table()


def get_notifier() -> NotificationSender:
    return NotificationSender()


def get_identity_provider(redis: aioredis.Redis = Depends(get_redis)) -> IdentityProvider:
    return KindeIdentityProvider(redis)


# ---------------------------------------------------------------------------
# Session and current user
# ---------------------------------------------------------------------------

async def get_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Session:
    """
    Authentication state of the request.

    The provider access token is read from the Bearer header, falling back
    to the session cookie. Missing or invalid tokens yield an anonymous
    session rather than an error.
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.SESSION_COOKIE_NAME)
    return provider.session_for(token)


async def get_current_user(
    session: Session = Depends(get_session),
    store: MembershipStore = Depends(get_store),
) -> User:
    """
    Return the local profile of the authenticated account.

    Raises 401 if the request is not authenticated. The profile is created
    on first use.
    """
    account = session.current_user()
    if account is None:
        raise not_authenticated()

    return await store.get_or_create_user(
        account_id=account.id,
        email=account.email,
        first_name=account.first_name,
        last_name=account.last_name,
    )


# ---------------------------------------------------------------------------
# Organization membership + permission enforcement
# ---------------------------------------------------------------------------

class OrgContext(BaseModel):
    """The current user and their standing in the addressed organization."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    organization_id: UUID
    user: User
    membership: Membership


async def get_org_context(
    organization_id: UUID,
    current_user: User = Depends(get_current_user),
    store: MembershipStore = Depends(get_store),
) -> OrgContext:
    """Resolve the current user's membership. Never raises for non-members."""
    membership = await resolve_membership(store, organization_id, current_user.id)
    return OrgContext(organization_id=organization_id, user=current_user, membership=membership)


def require_permission(area: str, action: str):
    """
    Dependency factory that enforces one permission.

    Usage:
        @router.patch("/{organization_id}")
        async def endpoint(
            context: OrgContext = Depends(require_permission("organization", "edit_org")),
        ):
            ...
    """
    async def permission_checker(
        context: OrgContext = Depends(get_org_context),
        table: PermissionTable = Depends(get_permissions),
    ) -> OrgContext:
        if not user_can(context.membership, area, action, table):
            raise forbidden()
        return context

    return permission_checker
