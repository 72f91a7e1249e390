"""
Membership store.

Query contracts over members, invitations and user profiles. Every query is
scoped by organization. SQLAlchemy failures surface as StoreUnavailableError.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import ParamSpec, TypeVar
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from appraisal.core.errors import StoreUnavailableError
from appraisal.core.security import token_digest, utcnow
from appraisal.models.invitation import InvitationStatus, OrgInvitation
from appraisal.models.member import OrgMember
from appraisal.models.user import User

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def store_call(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Re-raise driver/ORM errors (other than constraint violations) as StoreUnavailableError."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await fn(*args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Membership store call %s failed: %s", fn.__name__, exc)
            raise StoreUnavailableError(str(exc)) from exc

    return wrapper


def _sorted_roles(roles: Iterable[str]) -> list[str]:
    return sorted({str(getattr(role, "value", role)) for role in roles})


class MembershipStore:
    """Repository layer for organization members and invitations."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    @store_call
    async def find_user(self, user_id: UUID) -> User | None:
        return await self._db.get(User, user_id)

    @store_call
    async def find_user_by_account(self, account_id: str) -> User | None:
        result = await self._db.execute(select(User).where(User.account_id == account_id))
        return result.scalar_one_or_none()

    @store_call
    async def get_or_create_user(
        self,
        account_id: str,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Return the profile linked to ``account_id``, registering it on first use."""
        result = await self._db.execute(select(User).where(User.account_id == account_id))
        user = result.scalar_one_or_none()
        if user is not None:
            return user

        user = User(
            account_id=account_id,
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
        )
        self._db.add(user)
        await self._db.flush()
        logger.info("Registered user profile for account_id=%s", account_id)
        return user

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    @store_call
    async def find_membership(self, organization_id: UUID, user_id: UUID) -> OrgMember | None:
        result = await self._db.execute(
            select(OrgMember).where(
                OrgMember.organization_id == organization_id,
                OrgMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @store_call
    async def find_member(self, organization_id: UUID, member_id: UUID) -> OrgMember | None:
        result = await self._db.execute(
            select(OrgMember)
            .options(selectinload(OrgMember.user))
            .where(
                OrgMember.organization_id == organization_id,
                OrgMember.id == member_id,
            )
        )
        return result.scalar_one_or_none()

    @store_call
    async def list_members(self, organization_id: UUID, active_only: bool = True) -> list[OrgMember]:
        stmt = (
            select(OrgMember)
            .options(selectinload(OrgMember.user))
            .where(OrgMember.organization_id == organization_id)
            .order_by(OrgMember.created_at)
        )
        if active_only:
            stmt = stmt.where(OrgMember.active.is_(True))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    @store_call
    async def find_owners(self, organization_id: UUID) -> list[OrgMember]:
        result = await self._db.execute(
            select(OrgMember).where(
                OrgMember.organization_id == organization_id,
                OrgMember.active.is_(True),
                OrgMember.is_owner.is_(True),
            )
        )
        return list(result.scalars().all())

    @store_call
    async def upsert_membership(
        self,
        organization_id: UUID,
        user_id: UUID,
        roles: Iterable[str],
        active: bool = True,
        is_owner: bool | None = None,
    ) -> OrgMember:
        """
        Create the membership or reactivate an existing one.

        Existing roles are unioned with ``roles``; a row is never duplicated.
        A concurrent insert for the same user is merged into the row that won.
        """
        member = await self.find_membership(organization_id, user_id)
        if member is None:
            member = OrgMember(
                organization_id=organization_id,
                user_id=user_id,
                roles=_sorted_roles(roles),
                active=active,
                is_owner=bool(is_owner),
            )
            try:
                async with self._db.begin_nested():
                    self._db.add(member)
                return member
            except IntegrityError:
                member = await self.find_membership(organization_id, user_id)
                if member is None:
                    raise
                logger.info(
                    "Membership for user_id=%s in organization_id=%s was created concurrently; merging",
                    user_id,
                    organization_id,
                )

        member.roles = _sorted_roles([*member.roles, *roles])
        member.active = active
        if is_owner is not None:
            member.is_owner = is_owner
        await self._db.flush()
        return member

    @store_call
    async def save_member(self, member: OrgMember) -> OrgMember:
        await self._db.flush()
        return member

    # -----------------------------------------------------------------------
    # Invitations
    # -----------------------------------------------------------------------

    @store_call
    async def create_invitation(
        self,
        organization_id: UUID,
        invited_by_user_id: UUID,
        first_name: str,
        last_name: str,
        email: str,
        roles: Iterable[str],
        token: str,
        expires: datetime,
    ) -> OrgInvitation:
        invitation = OrgInvitation(
            organization_id=organization_id,
            invited_by_user_id=invited_by_user_id,
            invitee_first_name=first_name,
            invitee_last_name=last_name,
            invitee_email=email.lower(),
            roles=_sorted_roles(roles),
            token=token,
            token_digest=token_digest(token),
            status=InvitationStatus.pending,
            expires=expires,
        )
        self._db.add(invitation)
        await self._db.flush()
        return invitation

    @store_call
    async def find_invitation(self, organization_id: UUID, invitation_id: UUID) -> OrgInvitation | None:
        result = await self._db.execute(
            select(OrgInvitation).where(
                OrgInvitation.organization_id == organization_id,
                OrgInvitation.id == invitation_id,
            )
        )
        return result.scalar_one_or_none()

    @store_call
    async def find_invitation_by_token(
        self,
        organization_id: UUID,
        token: str,
    ) -> OrgInvitation | None:
        """
        Resolve an invitation by its link token within one organization.

        Spent tokens still match through their digest so callers can tell a
        resolved link from an unknown one. A token issued by another
        organization never matches.
        """
        stmt = (
            select(OrgInvitation)
            .options(
                selectinload(OrgInvitation.organization),
                selectinload(OrgInvitation.invited_by),
            )
            .where(
                OrgInvitation.organization_id == organization_id,
                OrgInvitation.token_digest == token_digest(token),
            )
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    @store_call
    async def find_pending_invitation_for_email(self, organization_id: UUID, email: str) -> OrgInvitation | None:
        result = await self._db.execute(
            select(OrgInvitation).where(
                OrgInvitation.organization_id == organization_id,
                OrgInvitation.invitee_email == email.lower(),
                OrgInvitation.status == InvitationStatus.pending,
                OrgInvitation.expires > utcnow(),
            )
        )
        return result.scalars().first()

    @store_call
    async def update_invitation(
        self,
        invitation: OrgInvitation,
        first_name: str | None = None,
        last_name: str | None = None,
        roles: Iterable[str] | None = None,
    ) -> OrgInvitation:
        if first_name is not None:
            invitation.invitee_first_name = first_name
        if last_name is not None:
            invitation.invitee_last_name = last_name
        if roles is not None:
            invitation.roles = _sorted_roles(roles)
        await self._db.flush()
        return invitation

    @store_call
    async def transition_invitation(
        self,
        organization_id: UUID,
        token: str,
        status: InvitationStatus,
    ) -> bool:
        """
        Move a pending invitation to a terminal ``status`` and clear its token.

        Conditional on ``(organization_id, token, status = pending)``, so of
        several concurrent callers at most one gets True.
        """
        result = await self._db.execute(
            update(OrgInvitation)
            .where(
                OrgInvitation.organization_id == organization_id,
                OrgInvitation.token == token,
                OrgInvitation.status == InvitationStatus.pending,
            )
            .values(status=status, token=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @store_call
    async def refresh_invitation(self, invitation: OrgInvitation) -> OrgInvitation:
        await self._db.refresh(invitation, attribute_names=["status", "token", "updated_at"])
        return invitation

    @store_call
    async def delete_invitation(self, invitation_id: UUID) -> None:
        await self._db.execute(
            delete(OrgInvitation)
            .where(OrgInvitation.id == invitation_id)
            .execution_options(synchronize_session="fetch")
        )
        await self._db.flush()
