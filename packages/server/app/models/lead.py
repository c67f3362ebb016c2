"""Lead (audience record) model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Lead(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "leads"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    stage: Optional[str] = Field(default=None, index=True)
    notes: Optional[str] = None
    extra: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    created_by: str = Field(nullable=False, index=True)  # creator email
    stage_updated_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
