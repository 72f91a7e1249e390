"""
Organization schemas.

Request/response models for organization and member management endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=2, max_length=100)
    avatar: str | None = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v


class OrganizationUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{id}."""

    name: str | None = Field(default=None, min_length=2, max_length=100)
    avatar: str | None = Field(default=None, max_length=500)


class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    avatar: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationsListResponse(BaseModel):
    organizations: list[OrganizationResponse]
    total: int


class PermissionsResponse(BaseModel):
    """Actions the caller may perform, as ``area:action`` strings."""

    organization_id: UUID
    permissions: list[str]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    """Single org member with user info."""

    id: UUID
    user_id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    avatar: str | None
    roles: list[str]
    is_owner: bool
    active: bool
    created_at: datetime


class MembersListResponse(BaseModel):
    """Response for GET /organizations/{id}/members."""

    members: list[MemberResponse]
    total: int


class MemberUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{id}/members/{member_id}."""

    roles: list[Literal["admin", "manager", "appraiser"]] | None = Field(default=None, min_length=1)
    active: bool | None = None


class TransferOwnershipRequest(BaseModel):
    """Request body for POST /organizations/{id}/transfer-ownership."""

    new_owner_member_id: UUID
    keep_admin_role: bool = False


class TransferOwnershipResponse(BaseModel):
    previous_owner: MemberResponse
    new_owner: MemberResponse
