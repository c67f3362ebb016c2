"""User profile model.

``role`` is a cache of the membership role in ``organization_id`` and is
rewritten from the membership row whenever the active organization changes.
"""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class UserProfile(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    uid: str = Field(unique=True, index=True, nullable=False)  # external identity
    email: str = Field(unique=True, index=True, nullable=False)
    display_name: str = Field(default="", nullable=False)
    role: Optional[str] = None
    organization_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id")
    is_active: bool = Field(default=True, nullable=False)
    legacy_team_id: Optional[str] = None  # pre-organization grouping, cleared by migration
