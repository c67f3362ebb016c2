from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"
    VIEWER = "viewer"


class InvitableRole(str, Enum):
    """Roles that can be granted through an invitation (never admin)."""
    USER = "user"
    VIEWER = "viewer"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody


class MessageResponse(BaseModel):
    message: str
