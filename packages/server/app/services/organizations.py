"""
Organization service — business logic for onboarding, org lifecycle and membership.

Membership rows are the only source of a user's per-organization role. The
profile's ``role`` is a cache, rewritten from the membership row every time
``organization_id`` changes.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    AuthenticatedMember,
    Principal,
    find_active_membership,
    find_profile,
)
from app.core.config import get_settings
from app.core.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from app.models.base import utcnow
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from leadflow_shared.schemas.common import Role
from leadflow_shared.schemas.organizations import (
    MemberAddRequest,
    OnboardingRequest,
    OrgCreateRequest,
    OrgSettings,
    OrgUpdateRequest,
)

log = structlog.get_logger()
settings = get_settings()


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge."""
    result = base.copy()
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# ---------------------------------------------------------------------------
# Membership queries
# ---------------------------------------------------------------------------

async def list_memberships(
    email: str, session: AsyncSession
) -> list[tuple[OrganizationMember, Organization]]:
    """Active memberships of an email in active orgs, oldest first."""
    result = await session.execute(
        select(OrganizationMember, Organization)
        .join(Organization, Organization.id == OrganizationMember.organization_id)
        .where(
            OrganizationMember.email == email,
            OrganizationMember.is_active == True,  # noqa: E712
            Organization.is_active == True,  # noqa: E712
        )
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
    )
    return [(membership, org) for membership, org in result.all()]


async def organization_ids_for(email: str, session: AsyncSession) -> list[uuid.UUID]:
    return [org.id for _, org in await list_memberships(email, session)]


async def count_active_organizations(email: str, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .join(Organization, Organization.id == OrganizationMember.organization_id)
        .where(
            OrganizationMember.email == email,
            OrganizationMember.is_active == True,  # noqa: E712
            Organization.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one()


async def ensure_within_limit(email: str, session: AsyncSession) -> None:
    """Reject before any write when the email is already at the org limit."""
    limit = settings.max_organizations_per_email
    count = await count_active_organizations(email, session)
    if count >= limit:
        log.info("org.limit_reached", email=email, count=count, limit=limit)
        raise Conflict(
            f"An account can belong to at most {limit} organizations",
            code="ORG_LIMIT_REACHED",
        )


async def list_members(org_id: uuid.UUID, session: AsyncSession) -> list[OrganizationMember]:
    result = await session.execute(
        select(OrganizationMember)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.is_active == True,  # noqa: E712
        )
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
    )
    return list(result.scalars().all())


async def member_count(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one()


async def _admin_count(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.role == Role.ADMIN.value,
            OrganizationMember.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one()


async def find_profile_by_email(email: str, session: AsyncSession) -> Optional[UserProfile]:
    result = await session.execute(select(UserProfile).where(UserProfile.email == email))
    return result.scalar_one_or_none()


async def _lock_profile(uid: str, session: AsyncSession) -> Optional[UserProfile]:
    """Row-lock the profile so concurrent creations by one principal serialise."""
    result = await session.execute(
        select(UserProfile).where(UserProfile.uid == uid).with_for_update()
    )
    return result.scalar_one_or_none()


async def sync_member_identity(email: str, uid: str, session: AsyncSession) -> None:
    """Point every membership row of ``email`` at the identity ``uid``."""
    result = await session.execute(
        update(OrganizationMember)
        .where(OrganizationMember.email == email, OrganizationMember.uid != uid)
        .values(uid=uid)
    )
    if result.rowcount:
        log.info("membership.identity_synced", uid=uid, rows=result.rowcount)


async def resolve_principal_profile(
    principal: Principal, session: AsyncSession
) -> Optional[UserProfile]:
    """Locked profile of the principal, or None before onboarding.

    A profile stored under an older identity for the same email is moved to
    the principal's uid together with its membership rows, so lookups by uid
    keep matching.
    """
    profile = await _lock_profile(principal.uid, session)
    if profile is None:
        result = await session.execute(
            select(UserProfile)
            .where(UserProfile.email == principal.email)
            .with_for_update()
        )
        profile = result.scalar_one_or_none()
        if profile is not None:
            log.info("profile.identity_changed", old_uid=profile.uid, uid=principal.uid)
            profile.uid = principal.uid
    if profile is not None and not profile.is_active:
        raise PermissionDenied()

    await sync_member_identity(principal.email, principal.uid, session)
    return profile


# ---------------------------------------------------------------------------
# Active organization
# ---------------------------------------------------------------------------

def set_active_organization(
    profile: UserProfile, org_id: Optional[uuid.UUID], role: Optional[str]
) -> None:
    profile.organization_id = org_id
    profile.role = role


async def reassign_active_organization(
    profile: UserProfile,
    session: AsyncSession,
    exclude: Optional[uuid.UUID] = None,
) -> None:
    """Move the profile to its first remaining organization, or clear it."""
    for membership, org in await list_memberships(profile.email, session):
        if org.id != exclude:
            set_active_organization(profile, org.id, membership.role)
            break
    else:
        set_active_organization(profile, None, None)
    session.add(profile)
    log.info(
        "profile.active_org_reassigned",
        uid=profile.uid,
        org_id=str(profile.organization_id) if profile.organization_id else None,
    )


# ---------------------------------------------------------------------------
# Onboarding and creation
# ---------------------------------------------------------------------------

async def get_onboarding_status(
    principal: Principal, session: AsyncSession
) -> tuple[Optional[UserProfile], bool]:
    """Return (profile, needs_onboarding). No profile or no orgs means onboarding."""
    profile = await find_profile(principal.uid, session)
    if profile is None:
        return None, True
    count = await count_active_organizations(profile.email, session)
    return profile, count == 0


async def _create_org_with_admin(
    name: str, uid: str, email: str, session: AsyncSession
) -> Organization:
    org = Organization(
        name=name,
        created_by=uid,
        settings=OrgSettings().model_dump(),
    )
    session.add(org)
    await session.flush()

    session.add(
        OrganizationMember(
            organization_id=org.id,
            email=email,
            uid=uid,
            role=Role.ADMIN.value,
        )
    )
    await session.flush()
    return org


async def complete_onboarding(
    principal: Principal,
    req: OnboardingRequest,
    session: AsyncSession,
) -> tuple[Organization, UserProfile]:
    """Create the first organization and the profile linked to it."""
    profile = await resolve_principal_profile(principal, session)
    await ensure_within_limit(principal.email, session)
    org = await _create_org_with_admin(req.name, principal.uid, principal.email, session)

    display_name = req.display_name or principal.name or principal.email.split("@")[0]
    if profile is None:
        profile = UserProfile(
            uid=principal.uid,
            email=principal.email,
            display_name=display_name,
        )
    elif req.display_name:
        profile.display_name = req.display_name
    set_active_organization(profile, org.id, Role.ADMIN.value)
    session.add(profile)
    await session.flush()

    log.info("onboarding.completed", org_id=str(org.id), uid=principal.uid)
    return org, profile


async def create_organization(
    profile: UserProfile,
    req: OrgCreateRequest,
    session: AsyncSession,
) -> Organization:
    """Create an org with the creator as sole admin and switch into it."""
    await _lock_profile(profile.uid, session)
    await ensure_within_limit(profile.email, session)

    org = await _create_org_with_admin(req.name, profile.uid, profile.email, session)
    set_active_organization(profile, org.id, Role.ADMIN.value)
    session.add(profile)
    await session.flush()

    log.info("org.created", org_id=str(org.id), creator=profile.uid)
    return org


# ---------------------------------------------------------------------------
# Reads and updates
# ---------------------------------------------------------------------------

async def list_user_organizations(
    profile: UserProfile, session: AsyncSession
) -> list[dict]:
    """Orgs the profile belongs to, with its role and member counts."""
    rows = await list_memberships(profile.email, session)
    if not rows:
        return []

    org_ids = [org.id for _, org in rows]
    result = await session.execute(
        select(OrganizationMember.organization_id, func.count())
        .where(
            OrganizationMember.organization_id.in_(org_ids),
            OrganizationMember.is_active == True,  # noqa: E712
        )
        .group_by(OrganizationMember.organization_id)
    )
    counts = {org_id: count for org_id, count in result.all()}

    return [
        {
            "id": org.id,
            "name": org.name,
            "created_at": org.created_at,
            "user_role": membership.role,
            "is_current": org.id == profile.organization_id,
            "member_count": counts.get(org.id, 0),
        }
        for membership, org in rows
    ]


async def update_organization(
    org: Organization,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Update org name and/or settings (deep merge)."""
    if req.name is not None:
        name = req.name.strip()
        if not name:
            raise ValidationFailed("Organization name must not be blank")
        org.name = name

    if req.settings is not None:
        merged = _deep_merge(org.settings or {}, req.settings)
        try:
            org.settings = OrgSettings.model_validate(merged).model_dump()
        except ValueError as exc:
            raise ValidationFailed(f"Invalid settings: {exc}")

    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id))
    return org


async def switch_organization(
    profile: UserProfile,
    org_id: uuid.UUID,
    session: AsyncSession,
) -> tuple[Organization, OrganizationMember]:
    """Make org_id the active organization; role is re-derived from membership."""
    org = await session.get(Organization, org_id)
    if not org or not org.is_active:
        raise NotFound("Organization not found")

    membership = await find_active_membership(org.id, profile.email, session)
    if not membership:
        log.info("org.switch_denied", uid=profile.uid, org_id=str(org_id))
        raise PermissionDenied(
            "You are not a member of this organization", code="NOT_A_MEMBER"
        )

    set_active_organization(profile, org.id, membership.role)
    session.add(profile)
    await session.flush()

    log.info("org.switched", uid=profile.uid, org_id=str(org.id), role=membership.role)
    return org, membership


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

async def _find_membership(
    org_id: uuid.UUID, uid: str, session: AsyncSession
) -> Optional[OrganizationMember]:
    result = await session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.uid == uid,
            OrganizationMember.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def add_member(
    org: Organization,
    req: MemberAddRequest,
    session: AsyncSession,
) -> OrganizationMember:
    """Add a member directly (no invitation)."""
    email = req.email.lower()
    profile = await find_profile_by_email(email, session)
    # A signed-in user keeps the identity on their profile.
    uid = profile.uid if profile is not None else req.uid

    existing = await session.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org.id,
            or_(OrganizationMember.uid == uid, OrganizationMember.email == email),
        )
    )
    if existing.first():
        raise Conflict("User is already a member of this organization", code="ALREADY_MEMBER")

    await ensure_within_limit(email, session)

    membership = OrganizationMember(
        organization_id=org.id,
        email=email,
        uid=uid,
        role=req.role.value,
    )
    session.add(membership)
    await session.flush()

    if profile is not None and profile.organization_id is None:
        set_active_organization(profile, org.id, membership.role)
        session.add(profile)
        await session.flush()

    log.info("org.member_added", org_id=str(org.id), uid=uid, role=membership.role)
    return membership


async def remove_member(
    org: Organization,
    target_uid: str,
    requester: AuthenticatedMember,
    session: AsyncSession,
) -> None:
    """Remove a member, or let a member leave."""
    membership = await _find_membership(org.id, target_uid, session)
    if not membership:
        raise NotFound("Member not found")

    is_self = membership.email == requester.email
    if not is_self and not requester.is_allowed("users", "delete"):
        raise PermissionDenied()

    if membership.role == Role.ADMIN.value and await _admin_count(org.id, session) <= 1:
        raise Conflict("An organization must keep at least one admin", code="LAST_ADMIN")

    await session.delete(membership)
    await session.flush()

    profile = await find_profile_by_email(membership.email, session)
    if profile is not None and profile.organization_id == org.id:
        await reassign_active_organization(profile, session, exclude=org.id)
        await session.flush()

    log.info(
        "org.member_removed",
        org_id=str(org.id),
        uid=target_uid,
        by=requester.uid,
        left=is_self,
    )


async def update_member_role(
    org: Organization,
    target_uid: str,
    role: Role,
    requester: AuthenticatedMember,
    session: AsyncSession,
) -> OrganizationMember:
    membership = await _find_membership(org.id, target_uid, session)
    if not membership:
        raise NotFound("Member not found")

    if (
        membership.role == Role.ADMIN.value
        and role != Role.ADMIN
        and await _admin_count(org.id, session) <= 1
    ):
        raise Conflict("An organization must keep at least one admin", code="LAST_ADMIN")

    membership.role = role.value
    session.add(membership)

    profile = await find_profile_by_email(membership.email, session)
    if profile is not None and profile.organization_id == org.id:
        profile.role = role.value
        session.add(profile)
    await session.flush()

    log.info(
        "org.member_role_updated",
        org_id=str(org.id),
        uid=target_uid,
        role=role.value,
        by=requester.uid,
    )
    return membership


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

async def delete_organization(
    org: Organization,
    requester: AuthenticatedMember,
    session: AsyncSession,
) -> None:
    """Soft-delete an org without stranding anyone."""
    if requester.role != Role.ADMIN.value:
        raise PermissionDenied()

    requester_orgs = await organization_ids_for(requester.email, session)
    if not any(org_id != org.id for org_id in requester_orgs):
        raise Conflict(
            "You cannot delete your only organization", code="LAST_ORGANIZATION"
        )

    members = await list_members(org.id, session)
    stranded = []
    for member in members:
        remaining = [
            org_id
            for org_id in await organization_ids_for(member.email, session)
            if org_id != org.id
        ]
        if not remaining:
            stranded.append(member.email)
    if stranded:
        log.info("org.delete_blocked", org_id=str(org.id), stranded=len(stranded))
        raise Conflict(
            "Deleting this organization would leave members without an organization",
            code="LAST_ORGANIZATION",
        )

    org.is_active = False
    org.deleted_at = utcnow()
    org.deleted_by = requester.uid
    session.add(org)
    for member in members:
        member.is_active = False
        session.add(member)
    await session.flush()

    result = await session.execute(
        select(UserProfile).where(UserProfile.organization_id == org.id)
    )
    for profile in result.scalars().all():
        await reassign_active_organization(profile, session, exclude=org.id)
    await session.flush()

    log.info("org.deleted", org_id=str(org.id), by=requester.uid, members=len(members))
