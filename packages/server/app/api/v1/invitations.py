"""
Invitation API endpoints.

POST   /api/v1/orgs/{orgId}/invitations   — Invite an email (users:create)
GET    /api/v1/orgs/{orgId}/invitations   — Pending invitations (users:read)
GET    /api/v1/invitations/verify?token=  — Check a token (no auth)
POST   /api/v1/invitations/accept         — Accept as the authenticated principal
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedMember, Principal, get_principal, require_permission
from app.core.config import get_settings
from app.core.database import get_session
from app.core.notifications import InvitationNotifier, get_notifier
from app.services import invitations as invitation_service
from leadflow_shared.schemas.invitations import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
    InvitationCreateRequest,
    InvitationCreateResponse,
    InvitationDetails,
    InvitationListItem,
    InvitationListResponse,
)

settings = get_settings()

router_global = APIRouter()
router_scoped = APIRouter()


@router_scoped.post("", response_model=InvitationCreateResponse, status_code=201, tags=["Invitations"])
async def create_invitation(
    body: InvitationCreateRequest,
    member: AuthenticatedMember = Depends(require_permission("users", "create")),
    notifier: InvitationNotifier = Depends(get_notifier),
    session: AsyncSession = Depends(get_session),
):
    """Create an invitation and send it. ``notification_sent`` reports delivery."""
    invitation, sent = await invitation_service.create_invitation(
        member, body, notifier, session
    )
    return InvitationCreateResponse(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.status,
        expires_at=invitation.expires_at,
        notification_sent=sent,
        join_link=(
            invitation_service.build_join_link(invitation.token)
            if settings.expose_join_links
            else None
        ),
    )


@router_scoped.get("", response_model=InvitationListResponse, tags=["Invitations"])
async def list_invitations(
    member: AuthenticatedMember = Depends(require_permission("users", "read")),
    session: AsyncSession = Depends(get_session),
):
    items = await invitation_service.list_invitations(member.org_id, session)
    return InvitationListResponse(data=[InvitationListItem(**item) for item in items])


@router_global.get("/invitations/verify", response_model=InvitationDetails, tags=["Invitations"])
async def verify_invitation(
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Details of a valid invitation; anything else is a generic 404."""
    invitation = await invitation_service.verify_invitation(token, session)
    return InvitationDetails(
        email=invitation.email,
        organization_name=invitation.organization_name,
        role=invitation.role,
        invited_by_name=invitation.invited_by_name,
        expires_at=invitation.expires_at,
    )


@router_global.post(
    "/invitations/accept", response_model=InvitationAcceptResponse, tags=["Invitations"]
)
async def accept_invitation(
    body: InvitationAcceptRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    invitation, role, already_member = await invitation_service.accept_invitation(
        body.token, principal, session
    )
    return InvitationAcceptResponse(
        message=(
            "You are already a member of this organization"
            if already_member
            else f"Joined {invitation.organization_name}"
        ),
        organization_id=invitation.organization_id,
        role=role,
        already_member=already_member,
    )
