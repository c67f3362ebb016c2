"""
Invitation service — create, verify and accept single-use join tokens.

An invitation token is a bearer credential: it is generated with
``secrets.token_urlsafe``, never listed back, and never logged.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedMember, Principal, find_active_membership
from app.core.config import get_settings
from app.core.errors import Conflict, NotFound, PermissionDenied
from app.core.notifications import InvitationNotifier
from app.models.base import as_utc, utcnow
from app.models.invitation import Invitation
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from app.services.organizations import (
    ensure_within_limit,
    resolve_principal_profile,
    set_active_organization,
)
from leadflow_shared.schemas.invitations import InvitationCreateRequest, InvitationStatus

log = structlog.get_logger()
settings = get_settings()


def build_join_link(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/join-team?token={token}"


def is_expired(invitation: Invitation) -> bool:
    return as_utc(invitation.expires_at) <= utcnow()


async def create_invitation(
    member: AuthenticatedMember,
    req: InvitationCreateRequest,
    notifier: InvitationNotifier,
    session: AsyncSession,
) -> tuple[Invitation, bool]:
    """Persist a pending invitation and dispatch it.

    Returns (invitation, notification_sent). A failed dispatch leaves the
    invitation valid.
    """
    email = req.email.lower()

    # Serialise invitation creation per organization.
    await session.execute(
        select(Organization.id).where(Organization.id == member.org_id).with_for_update()
    )

    if await find_active_membership(member.org_id, email, session):
        raise Conflict("User is already a member of this organization", code="ALREADY_MEMBER")

    result = await session.execute(
        select(Invitation).where(
            Invitation.email == email,
            Invitation.organization_id == member.org_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
    )
    if any(not is_expired(existing) for existing in result.scalars().all()):
        raise Conflict(
            "An invitation is already pending for this email", code="INVITATION_PENDING"
        )

    now = utcnow()
    invitation = Invitation(
        email=email,
        organization_id=member.org_id,
        organization_name=member.org.name,
        role=req.role.value,
        invited_by=member.uid,
        invited_by_name=req.invited_by_name or member.profile.display_name or member.email,
        status=InvitationStatus.PENDING.value,
        token=secrets.token_urlsafe(32),
        created_at=now,
        expires_at=now + timedelta(days=settings.invitation_ttl_days),
    )
    session.add(invitation)
    await session.flush()

    log.info(
        "invitation.created",
        invitation_id=str(invitation.id),
        org_id=str(member.org_id),
        role=invitation.role,
        by=member.uid,
    )

    try:
        sent = bool(
            await notifier.send_invitation(
                to=email,
                organization_name=invitation.organization_name,
                invited_by_name=invitation.invited_by_name,
                join_link=build_join_link(invitation.token),
                role=invitation.role,
            )
        )
    except Exception:
        log.exception("invitation.notification_failed", invitation_id=str(invitation.id))
        sent = False
    else:
        if not sent:
            log.warning("invitation.notification_not_sent", invitation_id=str(invitation.id))

    return invitation, sent


async def list_invitations(org_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """Pending invitations of an org, newest first, with their expiry flag."""
    result = await session.execute(
        select(Invitation)
        .where(
            Invitation.organization_id == org_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        .order_by(Invitation.created_at.desc())
    )
    return [
        {
            "id": invitation.id,
            "email": invitation.email,
            "role": invitation.role,
            "invited_by_name": invitation.invited_by_name,
            "created_at": invitation.created_at,
            "expires_at": invitation.expires_at,
            "is_expired": is_expired(invitation),
        }
        for invitation in result.scalars().all()
    ]


async def _valid_invitation(
    token: str, session: AsyncSession, lock: bool = False
) -> Invitation:
    query = select(Invitation).where(Invitation.token == token)
    if lock:
        query = query.with_for_update()
    result = await session.execute(query)
    invitation = result.scalar_one_or_none()

    valid = (
        invitation is not None
        and invitation.status == InvitationStatus.PENDING.value
        and not is_expired(invitation)
    )
    if valid:
        org = await session.get(Organization, invitation.organization_id)
        valid = org is not None and org.is_active
    if not valid:
        raise NotFound("Invalid or expired invitation", code="INVITATION_INVALID")
    return invitation


async def verify_invitation(token: str, session: AsyncSession) -> Invitation:
    """Read-only check of a token; invalid tokens reveal nothing."""
    return await _valid_invitation(token, session)


async def accept_invitation(
    token: str,
    principal: Principal,
    session: AsyncSession,
) -> tuple[Invitation, str, bool]:
    """Consume an invitation. Returns (invitation, role, already_member)."""
    invitation = await _valid_invitation(token, session, lock=True)

    if invitation.email.lower() != principal.email.lower():
        log.info("invitation.email_mismatch", invitation_id=str(invitation.id))
        raise PermissionDenied(
            "This invitation was sent to a different email address",
            code="EMAIL_MISMATCH",
        )

    profile = await resolve_principal_profile(principal, session)

    membership = await find_active_membership(
        invitation.organization_id, principal.email, session
    )
    already_member = membership is not None
    if not already_member:
        await ensure_within_limit(principal.email, session)
        membership = OrganizationMember(
            organization_id=invitation.organization_id,
            email=principal.email,
            uid=principal.uid,
            role=invitation.role,
        )
        session.add(membership)
        await session.flush()

    if profile is None:
        profile = UserProfile(
            uid=principal.uid,
            email=principal.email,
            display_name=principal.name or principal.email.split("@")[0],
        )
    if not already_member or profile.organization_id is None:
        set_active_organization(profile, invitation.organization_id, membership.role)
    session.add(profile)

    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.accepted_at = utcnow()
    invitation.accepted_by = principal.uid
    session.add(invitation)
    await session.flush()

    log.info(
        "invitation.accepted",
        invitation_id=str(invitation.id),
        org_id=str(invitation.organization_id),
        uid=principal.uid,
        already_member=already_member,
    )
    return invitation, membership.role, already_member
