"""Pipeline tag model."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class PipelineTag(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "pipeline_tags"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: str = Field(nullable=False)
    created_by: str = Field(nullable=False)
    is_active: bool = Field(default=True, nullable=False)
