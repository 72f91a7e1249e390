"""
Pytest configuration and shared fixtures.

Tests run in-process: the FastAPI app is called through httpx's
ASGITransport against an in-memory SQLite database, with the identity
provider and the notification sender replaced by recording fakes.
"""

import asyncio
import os
import time
from urllib.parse import quote

os.environ["IDENTITY_JWT_KEY"] = "test-identity-signing-key"
os.environ["IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SITE_BASE_URL"] = "https://app.example.com"
os.environ.pop("IDENTITY_AUDIENCE", None)
os.environ.pop("PERMISSIONS_FILE", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from appraisal.auth.provider import IdentityProvider, SessionUser
from appraisal.core.permissions import get_permission_table
from appraisal.core.security import decode_access_token
from appraisal.models import Base, Organization, OrgMember
from appraisal.models.user import User
from appraisal.repositories.membership import MembershipStore
from appraisal.repositories.organization import OrganizationStore
from appraisal.services.invitation_service import InvitationService
from appraisal.services.notification_service import NotificationSender

TEST_JWT_KEY = os.environ["IDENTITY_JWT_KEY"]


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def make_token(
    account_id: str,
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
    expires_in: int = 3600,
) -> str:
    """Sign an access token the way the identity provider would."""
    payload = {
        "sub": account_id,
        "email": email,
        "given_name": first_name,
        "family_name": last_name,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, TEST_JWT_KEY, algorithm="HS256")


def auth_headers(account_id: str, email: str, first_name: str = "Test", last_name: str = "User") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(account_id, email, first_name, last_name)}"}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeIdentityProvider(IdentityProvider):
    """Records allow-list calls; failure modes are switched on per test."""

    def __init__(self) -> None:
        self.allowed: set[str] = set()
        self.added: list[str] = []
        self.removed: list[str] = []
        self.add_result = True
        self.add_error: Exception | None = None
        self.remove_error: Exception | None = None
        self.delay = 0.0

    def authenticate(self, access_token: str) -> SessionUser:
        payload = decode_access_token(access_token)
        return SessionUser(
            id=payload["sub"],
            email=payload.get("email", ""),
            first_name=payload.get("given_name"),
            last_name=payload.get("family_name"),
        )

    async def add_allowed_redirect_urls(self, urls: list[str]) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.add_error is not None:
            raise self.add_error
        self.added.extend(urls)
        if self.add_result:
            self.allowed.update(urls)
        return self.add_result

    async def remove_allowed_redirect_url(self, url: str) -> bool:
        if self.remove_error is not None:
            raise self.remove_error
        self.removed.append(url)
        self.allowed.discard(url)
        return True

    def login_url(self, return_to: str, register: bool = False) -> str:
        route = "register" if register else "login"
        return f"https://auth.example.com/{route}?post_login_redirect_url={quote(return_to, safe='')}"

    def logout_url(self, return_to: str) -> str:
        return f"https://auth.example.com/logout?post_logout_redirect_url={quote(return_to, safe='')}"


class RecordingNotifier(NotificationSender):
    """Captures notifications instead of queueing Celery tasks."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.resolved: list[dict] = []

    def send_invite_created(self, invitation, organization, inviter, invite_link, token) -> bool:
        self.created.append(
            {
                "email": invitation.invitee_email,
                "organization_id": organization.id,
                "inviter_id": inviter.id,
                "invite_link": invite_link,
                "token": token,
            }
        )
        return True

    def send_invite_resolved(self, invitation, organization, inviter, status) -> bool:
        self.resolved.append(
            {
                "invitation_id": invitation.id,
                "organization_id": organization.id,
                "inviter_id": inviter.id if inviter else None,
                "status": status,
            }
        )
        return True

    @property
    def last_token(self) -> str:
        return self.created[-1]["token"]


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the identity provider."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db) -> MembershipStore:
    return MembershipStore(db)


@pytest.fixture
def org_store(db) -> OrganizationStore:
    return OrganizationStore(db)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def invitation_service(store, org_store, notifier) -> InvitationService:
    return InvitationService(
        store=store,
        organizations=org_store,
        table=get_permission_table(),
        notifier=notifier,
    )


async def create_user(store: MembershipStore, name: str) -> User:
    return await store.get_or_create_user(
        account_id=f"kp_{name}",
        email=f"{name}@example.com",
        first_name=name.capitalize(),
        last_name="Tester",
    )


async def create_organization(
    org_store: OrganizationStore,
    store: MembershipStore,
    owner: User,
    name: str = "Acme Appraisals",
) -> tuple[Organization, OrgMember]:
    organization = await org_store.create(name=name)
    member = await store.upsert_membership(
        organization.id, owner.id, roles=["owner", "admin"], is_owner=True
    )
    return organization, member


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory, provider, notifier):
    from appraisal.core.database import get_db
    from appraisal.core.dependencies import get_identity_provider, get_notifier
    from appraisal.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
