"""Invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import InvitableRole, Role


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: InvitableRole = InvitableRole.USER
    invited_by_name: Optional[str] = Field(default=None, max_length=200)


class InvitationCreateResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: InvitableRole
    status: InvitationStatus
    expires_at: datetime
    notification_sent: bool
    join_link: Optional[str] = None  # development only


class InvitationListItem(BaseModel):
    id: uuid.UUID
    email: str
    role: InvitableRole
    invited_by_name: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    is_expired: bool


class InvitationListResponse(BaseModel):
    data: list[InvitationListItem]


class InvitationDetails(BaseModel):
    """What an invitee may see about a valid invitation."""
    email: str
    organization_name: str
    role: InvitableRole
    invited_by_name: Optional[str] = None
    expires_at: datetime


class InvitationAcceptRequest(BaseModel):
    token: str = Field(..., min_length=1)


class InvitationAcceptResponse(BaseModel):
    message: str
    organization_id: uuid.UUID
    role: Role
    already_member: bool = False
