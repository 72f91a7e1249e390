"""
User profile ORM model.

Accounts live in the identity provider; this row links the provider
account to local memberships.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from appraisal.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from appraisal.models.invitation import OrgInvitation
    from appraisal.models.member import OrgMember


class User(Base, UUIDMixin, TimestampMixin):
    """Local profile of an identity provider account."""

    __tablename__ = "users"

    account_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    org_memberships: Mapped[list[OrgMember]] = relationship(
        "OrgMember", back_populates="user", cascade="all, delete-orphan"
    )
    invitations_sent: Mapped[list[OrgInvitation]] = relationship(
        "OrgInvitation", back_populates="invited_by"
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
