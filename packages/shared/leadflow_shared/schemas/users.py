"""User profile schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class UserUpdateRequest(BaseModel):
    """Update a profile's display name or active flag."""
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class PermissionEntry(BaseModel):
    resource: str
    actions: list[str]


class UserResponse(BaseModel):
    """Single user profile."""
    uid: str
    email: str
    display_name: str = ""
    role: Optional[Role] = None
    organization_id: Optional[uuid.UUID] = None
    organization_ids: list[uuid.UUID] = []
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class MeResponse(BaseModel):
    """The authenticated principal, with onboarding state and permissions."""
    uid: str
    email: str
    needs_onboarding: bool
    profile: Optional[UserResponse] = None
    permissions: list[PermissionEntry] = []


class UserListResponse(BaseModel):
    """Users visible to the requester in an org."""
    data: List[UserResponse]
