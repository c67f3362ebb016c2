"""
User API endpoints.

GET    /api/v1/orgs/{orgId}/users  — List users visible to the caller
GET    /api/v1/orgs/{orgId}/users/by-email?email= — Look up a member by email
GET    /api/v1/users/me            — Own profile
PATCH  /api/v1/users/{uid}         — Update a profile
DELETE /api/v1/users/{uid}         — Delete an account
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedMember,
    get_current_profile,
    get_permission_table,
    require_member,
    require_permission,
)
from app.core.database import get_session
from app.models.user import UserProfile
from app.services import users as user_service
from leadflow_shared.schemas.common import ErrorResponse, MessageResponse
from leadflow_shared.schemas.permissions import PermissionTable
from leadflow_shared.schemas.users import UserListResponse, UserResponse, UserUpdateRequest

router_global = APIRouter()
router_scoped = APIRouter()


@router_scoped.get("", response_model=UserListResponse, tags=["Users"])
async def list_users(
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """All members for users:read, otherwise only the caller."""
    items = await user_service.list_organization_users(member, session)
    return UserListResponse(data=[UserResponse(**item) for item in items])


@router_scoped.get(
    "/by-email",
    response_model=UserResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Users"],
)
async def get_user_by_email(
    email: str = Query(..., min_length=1),
    member: AuthenticatedMember = Depends(require_permission("users", "read")),
    session: AsyncSession = Depends(get_session),
):
    """Find a member of this org by email."""
    item = await user_service.find_org_user_by_email(member, email, session)
    return UserResponse(**item)


@router_global.get("/users/me", response_model=UserResponse, tags=["Users"])
async def get_me(
    profile: UserProfile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    return UserResponse(**await user_service.profile_to_dict(profile, session))


@router_global.patch("/users/{uid}", response_model=UserResponse, tags=["Users"])
async def update_user(
    uid: str,
    body: UserUpdateRequest,
    profile: UserProfile = Depends(get_current_profile),
    permissions: PermissionTable = Depends(get_permission_table),
    session: AsyncSession = Depends(get_session),
):
    """Update a profile: own display name, or users:update in a shared org."""
    target = await user_service.update_profile(uid, body, profile, permissions, session)
    return UserResponse(**await user_service.profile_to_dict(target, session))


@router_global.delete("/users/{uid}", response_model=MessageResponse, tags=["Users"])
async def delete_user(
    uid: str,
    profile: UserProfile = Depends(get_current_profile),
    permissions: PermissionTable = Depends(get_permission_table),
    session: AsyncSession = Depends(get_session),
):
    """Delete an account with its memberships and leads."""
    await user_service.delete_account(uid, profile, permissions, session)
    return MessageResponse(message="Account deleted")
