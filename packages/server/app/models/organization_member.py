"""Organization membership: the authoritative per-organization role."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class OrganizationMember(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_members"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "uid", name="uq_org_members_org_uid"),
        sa.UniqueConstraint("organization_id", "email", name="uq_org_members_org_email"),
    )

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    email: str = Field(nullable=False, index=True)
    uid: str = Field(nullable=False, index=True)
    role: str = Field(nullable=False, default="user")  # admin | user | viewer
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    is_active: bool = Field(default=True, nullable=False)
