"""
Organization API endpoints.

POST   /api/v1/onboarding                      — Create first org + profile
GET    /api/v1/orgs                            — List orgs for authenticated user
POST   /api/v1/orgs                            — Create a new org
POST   /api/v1/orgs/switch                     — Switch active org
GET    /api/v1/orgs/{orgId}                    — Get org details with members
PATCH  /api/v1/orgs/{orgId}                    — Update org name/settings
DELETE /api/v1/orgs/{orgId}                    — Soft-delete org
POST   /api/v1/orgs/{orgId}/members            — Add member
DELETE /api/v1/orgs/{orgId}/members/{uid}      — Remove member / leave
PUT    /api/v1/orgs/{orgId}/members/{uid}/role — Change a member's role
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedMember,
    Principal,
    get_current_profile,
    get_principal,
    require_member,
    require_permission,
)
from app.core.database import get_session
from app.models.organization import Organization
from app.models.user import UserProfile
from app.services import organizations as org_service
from leadflow_shared.schemas.common import MessageResponse
from leadflow_shared.schemas.organizations import (
    MemberAddRequest,
    MemberResponse,
    MemberRoleUpdateRequest,
    OnboardingRequest,
    OnboardingResponse,
    OrgCreateRequest,
    OrgListItem,
    OrgListResponse,
    OrgResponse,
    OrgSettings,
    OrgSwitchRequest,
    OrgSwitchResponse,
    OrgUpdateRequest,
)


async def _org_response(org: Organization, session: AsyncSession) -> OrgResponse:
    members = await org_service.list_members(org.id, session)
    return OrgResponse(
        id=org.id,
        name=org.name,
        created_by=org.created_by,
        is_active=org.is_active,
        settings=OrgSettings.model_validate(org.settings or {}),
        members=[MemberResponse.model_validate(member) for member in members],
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgId in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.post(
    "/onboarding", response_model=OnboardingResponse, status_code=201, tags=["Onboarding"]
)
async def complete_onboarding(
    body: OnboardingRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    """Create the first organization. The caller becomes its admin."""
    org, profile = await org_service.complete_onboarding(principal, body, session)
    return OnboardingResponse(
        organization=await _org_response(org, session),
        profile_uid=profile.uid,
        role=profile.role,
    )


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    profile: UserProfile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = [
        OrgListItem(**item)
        for item in await org_service.list_user_organizations(profile, session)
    ]
    current = next((item for item in items if item.is_current), None)
    return OrgListResponse(data=items, current=current)


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    profile: UserProfile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its admin and switches into it."""
    org = await org_service.create_organization(profile, body, session)
    return await _org_response(org, session)


@router_global.post("/orgs/switch", response_model=OrgSwitchResponse, tags=["Organizations"])
async def switch_org(
    body: OrgSwitchRequest,
    profile: UserProfile = Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
):
    """Make another org the active one. The role comes from that org's membership."""
    org, membership = await org_service.switch_organization(
        profile, body.organization_id, session
    )
    return OrgSwitchResponse(
        organization_id=org.id,
        name=org.name,
        member_count=await org_service.member_count(org.id, session),
        user_role=membership.role,
    )


# ---------------------------------------------------------------------------
# Org-scoped routes (orgId in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Get org details including settings and members."""
    return await _org_response(member.org, session)


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    body: OrgUpdateRequest,
    member: AuthenticatedMember = Depends(require_permission("settings", "update")),
    session: AsyncSession = Depends(get_session),
):
    """Update org name or settings. Settings are deep-merged."""
    org = await org_service.update_organization(member.org, body, session)
    return await _org_response(org, session)


@router_scoped.delete("", response_model=MessageResponse, tags=["Organizations"])
async def delete_org(
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Soft-delete the org (admin only, never anyone's last org)."""
    await org_service.delete_organization(member.org, member, session)
    return MessageResponse(message="Organization deleted")


@router_scoped.post(
    "/members", response_model=MemberResponse, status_code=201, tags=["Organizations"]
)
async def add_member(
    body: MemberAddRequest,
    member: AuthenticatedMember = Depends(require_permission("users", "create")),
    session: AsyncSession = Depends(get_session),
):
    """Add a member directly."""
    membership = await org_service.add_member(member.org, body, session)
    return MemberResponse.model_validate(membership)


@router_scoped.delete("/members/{uid}", response_model=MessageResponse, tags=["Organizations"])
async def remove_member(
    uid: str,
    member: AuthenticatedMember = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member (users:delete), or leave the org (own uid)."""
    await org_service.remove_member(member.org, uid, member, session)
    return MessageResponse(message="Member removed")


@router_scoped.put("/members/{uid}/role", response_model=MemberResponse, tags=["Organizations"])
async def update_member_role(
    uid: str,
    body: MemberRoleUpdateRequest,
    member: AuthenticatedMember = Depends(require_permission("users", "manage_roles")),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role in this org."""
    membership = await org_service.update_member_role(
        member.org, uid, body.role, member, session
    )
    return MemberResponse.model_validate(membership)
