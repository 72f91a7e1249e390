"""
OrgMember ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from appraisal.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from appraisal.models.organization import Organization
    from appraisal.models.user import User


class MemberRole(str, enum.Enum):
    """Organization member role enumeration."""

    owner = "owner"
    admin = "admin"
    manager = "manager"
    appraiser = "appraiser"


class OrgMember(Base, UUIDMixin, TimestampMixin):
    """
    Links a user to an organization.

    Rows are never deleted; leaving or removal sets ``active`` to False so
    past membership stays on record.
    """

    __tablename__ = "org_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_members_org_user"),
        # At most one active owner per organization.
        Index(
            "uq_org_members_active_owner",
            "organization_id",
            unique=True,
            postgresql_where=text("is_owner AND active"),
            sqlite_where=text("is_owner AND active"),
        ),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="members"
    )
    user: Mapped[User] = relationship(
        "User", back_populates="org_memberships"
    )

    def __repr__(self) -> str:
        return (
            f"<OrgMember organization_id={self.organization_id} user_id={self.user_id} "
            f"roles={self.roles} active={self.active}>"
        )
