"""Organization (tenant) model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    created_by: str = Field(nullable=False)  # uid of the creator
    is_active: bool = Field(default=True, nullable=False, index=True)
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    deleted_by: Optional[str] = None
