"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
"""

from appraisal.models.base import Base, TimestampMixin, UUIDMixin
from appraisal.models.member import MemberRole, OrgMember
from appraisal.models.organization import Organization
from appraisal.models.user import User
from appraisal.models.invitation import InvitationStatus, OrgInvitation

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "User",
    "OrgMember",
    "MemberRole",
    "OrgInvitation",
    "InvitationStatus",
]
