"""Invitation model. Rows are never deleted; they form the audit trail."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Invitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "invitations"

    email: str = Field(nullable=False, index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    organization_name: str = Field(nullable=False)
    role: str = Field(nullable=False)  # user | viewer
    invited_by: str = Field(nullable=False)
    invited_by_name: Optional[str] = None
    status: str = Field(default="pending", nullable=False, index=True)
    token: str = Field(unique=True, index=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    accepted_by: Optional[str] = None
