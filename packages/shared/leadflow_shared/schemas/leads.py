"""Lead / audience schemas.

Known fields are explicit; anything else a client sends goes into ``extra``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

KNOWN_LEAD_FIELDS = ("name", "email", "phone", "bio")


class LeadCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    bio: Optional[str] = None
    stage: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def has_content(self) -> bool:
        """True if any known field is non-blank or extra is non-empty."""
        for name in KNOWN_LEAD_FIELDS:
            value = getattr(self, name)
            if value is not None and value.strip():
                return True
        return bool(self.extra)


class LeadBatchCreate(BaseModel):
    leads: list[LeadCreate] = Field(..., min_length=1)


class LeadBatchCreateResponse(BaseModel):
    inserted_count: int


class LeadUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    bio: Optional[str] = None
    stage: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    extra: Optional[dict[str, Any]] = None


class LeadBulkDeleteRequest(BaseModel):
    ids: list[uuid.UUID] = Field(..., min_length=1)


class LeadDeleteResponse(BaseModel):
    deleted_count: int


class LeadRead(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    stage: Optional[str] = None
    notes: Optional[str] = None
    extra: dict[str, Any] = {}
    created_by: str
    created_at: datetime
    updated_at: datetime
    stage_updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LeadListResponse(BaseModel):
    data: list[LeadRead]
    scope: str
