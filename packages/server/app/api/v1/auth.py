"""
Authentication endpoints.

- Session exchange: an identity token from the identity provider becomes
  an ``lf_session`` cookie (plus the ``lf_csrf`` double-submit cookie)
- Logout
- Current principal with onboarding state and effective permissions
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    Principal,
    generate_csrf_token,
    get_permission_table,
    get_principal,
    principal_from_token,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.services import organizations as org_service
from app.services import users as user_service
from leadflow_shared.schemas.permissions import PermissionTable
from leadflow_shared.schemas.users import MeResponse, PermissionEntry, UserResponse

settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.session_expire_minutes * 60,
}


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.session_expire_minutes * 60,
    )


class SessionRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Identity token from the identity provider")


class SessionResponse(BaseModel):
    uid: str
    email: str
    message: str


@router.post("/session", response_model=SessionResponse)
async def create_session(body: SessionRequest, response: Response):
    """Exchange a verified identity token for session cookies."""
    principal = principal_from_token(body.token)
    _set_session_cookies(response, body.token, generate_csrf_token())
    return SessionResponse(uid=principal.uid, email=principal.email, message="Session started")


@router.post("/logout")
async def logout(response: Response):
    """Clear the session cookies."""
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_principal),
    permissions: PermissionTable = Depends(get_permission_table),
    session: AsyncSession = Depends(get_session),
):
    """Who am I, do I need onboarding, and what may I do in my active org."""
    profile, needs_onboarding = await org_service.get_onboarding_status(principal, session)
    if profile is None:
        return MeResponse(uid=principal.uid, email=principal.email, needs_onboarding=True)

    role = await user_service.active_role(profile, session)
    return MeResponse(
        uid=profile.uid,
        email=profile.email,
        needs_onboarding=needs_onboarding,
        profile=UserResponse(**await user_service.profile_to_dict(profile, session)),
        permissions=[
            PermissionEntry(**permission.to_dict())
            for permission in permissions.permissions_for(role)
        ],
    )
