"""Pipeline step model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class PipelineStep(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "pipeline_steps"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: str = Field(default="", nullable=False)
    color: Optional[str] = None
    bg_color: Optional[str] = None
    border_color: Optional[str] = None
    order: int = Field(nullable=False)
    created_by: str = Field(nullable=False)
    is_active: bool = Field(default=True, nullable=False)
