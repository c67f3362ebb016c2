"""
Authentication and Authorization for LeadFlow.

- Identity: the external identity provider issues a signed identity token
  carrying (uid, email). It is verified here and trusted as-is; no password
  or credential handling happens in this service.
- Sessions: the same token may be stored in the ``lf_session`` cookie.
- Authorization: org-scoped dependencies resolve the caller's profile and
  membership, then consult the injected PermissionTable. Every check fails
  closed when the profile or membership cannot be resolved.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import AuthenticationRequired, NotFound, PermissionDenied
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from leadflow_shared.schemas.permissions import AccessScope, PermissionTable

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "lf_session"
CSRF_COOKIE = "lf_csrf"

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# Identity tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Principal:
    """A verified (identity, email) pair supplied by the identity provider."""

    uid: str
    email: str
    name: Optional[str] = None


def issue_identity_token(
    uid: str,
    email: str,
    name: Optional[str] = None,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an identity token. Used by the local identity provider and tests."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.session_expire_minutes))
    payload = {
        "sub": uid,
        "email": email,
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    if name:
        payload["name"] = name
    if settings.identity_token_issuer:
        payload["iss"] = settings.identity_token_issuer
    if settings.identity_token_audience:
        payload["aud"] = settings.identity_token_audience
    return jwt.encode(
        payload, settings.identity_token_secret, algorithm=settings.identity_token_algorithm
    )


def decode_identity_token(token: str) -> dict:
    """Decode and verify an identity token. Raises jwt.PyJWTError on failure."""
    options = {"require": ["sub", "email", "exp"]}
    kwargs = {}
    if settings.identity_token_issuer:
        kwargs["issuer"] = settings.identity_token_issuer
    if settings.identity_token_audience:
        kwargs["audience"] = settings.identity_token_audience
    else:
        options["verify_aud"] = False
    return jwt.decode(
        token,
        settings.identity_token_secret,
        algorithms=[settings.identity_token_algorithm],
        options=options,
        **kwargs,
    )


def principal_from_token(token: str) -> Principal:
    try:
        payload = decode_identity_token(token)
    except jwt.PyJWTError:
        raise AuthenticationRequired("Invalid or expired identity token")
    email = str(payload["email"]).strip().lower()
    if not email:
        raise AuthenticationRequired("Identity token has no email")
    return Principal(uid=str(payload["sub"]), email=email, name=payload.get("name"))


def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_principal(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
) -> Principal:
    """Resolve the caller from the bearer header, then the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        return principal_from_token(authorization[7:].strip())

    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return principal_from_token(token)

    raise AuthenticationRequired()


def get_permission_table(request: Request) -> PermissionTable:
    """The PermissionTable built at app creation."""
    return request.app.state.permissions


async def find_profile(uid: str, session: AsyncSession) -> Optional[UserProfile]:
    result = await session.execute(select(UserProfile).where(UserProfile.uid == uid))
    return result.scalar_one_or_none()


async def get_current_profile(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
) -> UserProfile:
    """The caller's active profile; a missing profile means onboarding first."""
    profile = await find_profile(principal.uid, session)
    if not profile:
        raise PermissionDenied("Onboarding required", code="ONBOARDING_REQUIRED")
    if not profile.is_active:
        raise PermissionDenied()
    return profile


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class AuthenticatedMember:
    """An authenticated profile acting inside one organization.

    ``role`` always comes from the membership row, never from the profile's
    cached role.
    """

    def __init__(
        self,
        profile: UserProfile,
        org: Organization,
        membership: OrganizationMember,
        permissions: PermissionTable,
    ):
        self.profile = profile
        self.org = org
        self.membership = membership
        self.permissions = permissions
        self.uid = profile.uid
        self.email = profile.email
        self.org_id = org.id
        self.role = membership.role

    def is_allowed(self, resource: str, action: str) -> bool:
        return self.permissions.is_allowed(self.role, resource, action)

    def scope(self, resource: str) -> AccessScope:
        return self.permissions.access_scope(self.role, resource)


async def find_active_membership(
    org_id: uuid.UUID, email: str, session: AsyncSession
) -> Optional[OrganizationMember]:
    result = await session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.email == email,
            OrganizationMember.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def require_member(
    orgId: uuid.UUID,
    profile: UserProfile = Depends(get_current_profile),
    permissions: PermissionTable = Depends(get_permission_table),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedMember:
    """Any active member of the path organization can access this endpoint."""
    org = await session.get(Organization, orgId)
    if not org or not org.is_active:
        raise NotFound("Organization not found")

    membership = await find_active_membership(org.id, profile.email, session)
    if not membership:
        # Same answer as a missing org: membership is not disclosed.
        raise NotFound("Organization not found")

    return AuthenticatedMember(profile, org, membership, permissions)


def require_permission(resource: str, action: str):
    """Dependency factory: caller's membership role must grant (resource, action)."""

    async def dependency(
        member: AuthenticatedMember = Depends(require_member),
    ) -> AuthenticatedMember:
        if not member.is_allowed(resource, action):
            log.info(
                "authz.denied",
                uid=member.uid,
                org_id=str(member.org_id),
                resource=resource,
                action=action,
            )
            raise PermissionDenied()
        return member

    return dependency
