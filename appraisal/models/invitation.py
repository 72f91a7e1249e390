"""
OrgInvitation ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from appraisal.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from appraisal.models.organization import Organization
    from appraisal.models.user import User


class InvitationStatus(str, enum.Enum):
    """Invitation states. Everything except ``pending`` is terminal."""

    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    expired = "expired"


class OrgInvitation(Base, UUIDMixin, TimestampMixin):
    """
    Invitation for a person to join an organization.

    ``token`` is only set while the invitation is pending. ``token_digest``
    outlives it so a spent link is recognised without being usable.
    """

    __tablename__ = "org_invitations"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invited_by_user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    invitee_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    invitee_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    invitee_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    token: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    token_digest: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, name="org_invitation_status"),
        nullable=False,
        default=InvitationStatus.pending,
    )
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="invitations"
    )
    invited_by: Mapped[User] = relationship(
        "User", back_populates="invitations_sent"
    )

    @property
    def invitee_name(self) -> str:
        return " ".join(
            part for part in (self.invitee_first_name, self.invitee_last_name) if part
        )

    def __repr__(self) -> str:
        return (
            f"<OrgInvitation id={self.id} email={self.invitee_email!r} "
            f"organization_id={self.organization_id} status={self.status}>"
        )
