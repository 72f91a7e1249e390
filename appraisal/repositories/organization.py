"""
Organization store.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from appraisal.models.invitation import OrgInvitation
from appraisal.models.member import OrgMember
from appraisal.models.organization import Organization
from appraisal.repositories.membership import store_call


class OrganizationStore:
    """Repository layer for organizations."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @store_call
    async def find(self, organization_id: UUID) -> Organization | None:
        return await self._db.get(Organization, organization_id)

    @store_call
    async def create(self, name: str, avatar: str | None = None) -> Organization:
        organization = Organization(name=name, avatar=avatar)
        self._db.add(organization)
        await self._db.flush()
        return organization

    @store_call
    async def list_for_user(self, user_id: UUID) -> list[Organization]:
        """Organizations in which the user holds an active membership."""
        result = await self._db.execute(
            select(Organization)
            .join(OrgMember, OrgMember.organization_id == Organization.id)
            .where(
                OrgMember.user_id == user_id,
                OrgMember.active.is_(True),
            )
            .order_by(Organization.name)
        )
        return list(result.scalars().all())

    @store_call
    async def save(self, organization: Organization) -> Organization:
        await self._db.flush()
        return organization

    @store_call
    async def delete(self, organization_id: UUID) -> None:
        """Remove the organization together with its members and invitations."""
        for model in (OrgInvitation, OrgMember):
            await self._db.execute(
                delete(model)
                .where(model.organization_id == organization_id)
                .execution_options(synchronize_session=False)
            )
        await self._db.execute(
            delete(Organization)
            .where(Organization.id == organization_id)
            .execution_options(synchronize_session=False)
        )
        await self._db.flush()
