"""
Invitation schemas.

Request/response models for invite management, the public invite lookup,
the join endpoint and the invite page.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from appraisal.models.invitation import InvitationStatus

# Owner is granted by creating or transferring an organization, never by invite.
InvitableRole = Literal["admin", "manager", "appraiser"]


def _strip_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Name cannot be blank")
    return v


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------

class InviteRequest(BaseModel):
    """Request body for POST /organizations/{id}/invite."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    roles: list[InvitableRole] = Field(min_length=1)

    @field_validator("first_name", "last_name")
    @classmethod
    def names_must_not_be_blank(cls, v: str | None) -> str | None:
        return _strip_name(v)


class InviteUpdateRequest(BaseModel):
    """Request body for PUT /organizations/{id}/invite/{invite_id}."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    roles: list[InvitableRole] | None = Field(default=None, min_length=1)

    @field_validator("first_name", "last_name")
    @classmethod
    def names_must_not_be_blank(cls, v: str | None) -> str | None:
        return _strip_name(v)


class InvitationResponse(BaseModel):
    """Invitation detail response (never includes the token)."""

    id: UUID
    organization_id: UUID
    invitee_first_name: str
    invitee_last_name: str
    invitee_email: str
    roles: list[str]
    status: InvitationStatus
    expires: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Public lookup
# ---------------------------------------------------------------------------

class PublicOrganization(BaseModel):
    name: str
    avatar: str | None


class PublicInviter(BaseModel):
    first_name: str | None
    last_name: str | None


class PublicInvitationResponse(BaseModel):
    """What an unauthenticated invitee may see about an invitation."""

    organization: PublicOrganization
    invited_by: PublicInviter
    status: InvitationStatus
    expires: datetime


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------

class JoinRequest(BaseModel):
    """Request body for POST /organizations/{id}/join."""

    token: str = Field(min_length=1, max_length=255)
    status: Literal["accepted", "declined"] = "accepted"


class JoinResponse(BaseModel):
    status: str
    message: str
    member_id: UUID | None = None


# ---------------------------------------------------------------------------
# Invite page
# ---------------------------------------------------------------------------

class InvitePageResponse(BaseModel):
    """View model for the invite landing page."""

    state: Literal["invalid", "login_required", "ready"]
    message: str | None = None
    logged_in: bool
    invitation: PublicInvitationResponse | None = None
    login_url: str | None = None
    token: str | None = None
