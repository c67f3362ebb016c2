"""Pipeline step and tag schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PipelineStepBase(BaseModel):
    title: str = Field(..., max_length=100)
    description: str = Field(default="", max_length=1000)
    color: Optional[str] = Field(default=None, max_length=50)
    bg_color: Optional[str] = Field(default=None, max_length=50)
    border_color: Optional[str] = Field(default=None, max_length=50)

    @field_validator("title", "description")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class PipelineStepCreate(PipelineStepBase):
    @field_validator("title")
    @classmethod
    def _title_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Title is required")
        return value


class PipelineStepUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    color: Optional[str] = Field(default=None, max_length=50)
    bg_color: Optional[str] = Field(default=None, max_length=50)
    border_color: Optional[str] = Field(default=None, max_length=50)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            value = value.strip()
            if not value:
                raise ValueError("Title must not be blank")
        return value


class PipelineStepBulkCreate(BaseModel):
    # Blank titles are tolerated here and filtered out by the service.
    steps: list[PipelineStepBase] = Field(..., min_length=1)


class PipelineReorderRequest(BaseModel):
    step_ids: list[uuid.UUID] = Field(..., min_length=1)


class PipelineStepRead(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    color: Optional[str] = None
    bg_color: Optional[str] = None
    border_color: Optional[str] = None
    order: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PipelineStepListResponse(BaseModel):
    data: list[PipelineStepRead]


class PipelineTagCreate(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)

    @field_validator("name", "description")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


# Tags are replaced whole on update.
PipelineTagUpdate = PipelineTagCreate


class PipelineTagRead(BaseModel):
    id: uuid.UUID
    name: str
    description: str
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PipelineTagListResponse(BaseModel):
    data: list[PipelineTagRead]
