"""
Organization-related Pydantic schemas.

Covers: onboarding, org create/update request/response, membership
entries, org switching, OrgSettings.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Role


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class OrgSettings(BaseModel):
    """Org-level settings. All fields optional with defaults."""

    require_invitation: bool = Field(
        default=True,
        description="New members can only join through an invitation",
    )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class _NamedRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Organization name must not be blank")
        return value


class OnboardingRequest(_NamedRequest):
    display_name: Optional[str] = Field(None, max_length=200)


class OrgCreateRequest(_NamedRequest):
    pass


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    settings: Optional[dict] = Field(
        None,
        description="Partial settings update (deep-merged)",
    )


class OrgSwitchRequest(BaseModel):
    organization_id: uuid.UUID


class MemberAddRequest(BaseModel):
    email: EmailStr
    uid: str = Field(..., min_length=1, max_length=128)
    role: Role = Role.USER


class MemberRoleUpdateRequest(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    email: str
    uid: str
    role: Role
    joined_at: datetime
    is_active: bool

    model_config = {"from_attributes": True}


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    created_by: str
    is_active: bool
    settings: OrgSettings
    members: list[MemberResponse] = []
    created_at: datetime
    updated_at: datetime


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    created_at: datetime
    user_role: Role  # the requesting user's role in this org
    is_current: bool
    member_count: int


class OrgListResponse(BaseModel):
    data: list[OrgListItem]
    current: Optional[OrgListItem] = None


class OrgSwitchResponse(BaseModel):
    organization_id: uuid.UUID
    name: str
    member_count: int
    user_role: Role


class OnboardingResponse(BaseModel):
    organization: OrgResponse
    profile_uid: str
    role: Role
