"""
User profile service — profile reads, updates and account removal.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedMember, find_active_membership, find_profile
from app.core.errors import Conflict, NotFound, PermissionDenied
from app.models.base import utcnow
from app.models.lead import Lead
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from app.services.organizations import (
    find_profile_by_email,
    list_members,
    list_memberships,
    organization_ids_for,
)
from leadflow_shared.schemas.common import Role
from leadflow_shared.schemas.permissions import PermissionTable
from leadflow_shared.schemas.users import UserUpdateRequest

log = structlog.get_logger()


async def profile_to_dict(profile: UserProfile, session: AsyncSession) -> dict:
    return {
        "uid": profile.uid,
        "email": profile.email,
        "display_name": profile.display_name,
        "role": profile.role,
        "organization_id": profile.organization_id,
        "organization_ids": await organization_ids_for(profile.email, session),
        "is_active": profile.is_active,
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
    }


async def find_org_user_by_email(
    member: AuthenticatedMember, email: str, session: AsyncSession
) -> dict:
    """Active user with this email who belongs to the caller's org."""
    email = email.strip().lower()
    membership = await find_active_membership(member.org_id, email, session)
    profile = await find_profile_by_email(email, session) if membership else None
    if profile is None or not profile.is_active:
        raise NotFound("User not found")
    item = await profile_to_dict(profile, session)
    item["role"] = membership.role
    return item


async def list_organization_users(
    member: AuthenticatedMember, session: AsyncSession
) -> list[dict]:
    """Members with users:read see the whole org; everyone else sees themselves."""
    if not member.is_allowed("users", "read"):
        return [await profile_to_dict(member.profile, session)]

    memberships = await list_members(member.org_id, session)
    items = []
    for membership in memberships:
        profile = await find_profile_by_email(membership.email, session)
        if profile is None:
            # Added directly but never signed in.
            items.append(
                {
                    "uid": membership.uid,
                    "email": membership.email,
                    "display_name": "",
                    "role": membership.role,
                    "organization_id": None,
                    "organization_ids": await organization_ids_for(membership.email, session),
                    "is_active": True,
                    "created_at": membership.joined_at,
                    "updated_at": membership.joined_at,
                }
            )
            continue
        item = await profile_to_dict(profile, session)
        item["role"] = membership.role  # role in this org, not the cached one
        items.append(item)
    return items


async def _shared_org_role(
    requester: UserProfile,
    target: UserProfile,
    permissions: PermissionTable,
    action: str,
    session: AsyncSession,
) -> bool:
    """Does the requester hold users:<action> in any org the target belongs to?"""
    for _, org in await list_memberships(target.email, session):
        membership = await find_active_membership(org.id, requester.email, session)
        if membership and permissions.is_allowed(membership.role, "users", action):
            return True
    return False


async def update_profile(
    target_uid: str,
    req: UserUpdateRequest,
    requester: UserProfile,
    permissions: PermissionTable,
    session: AsyncSession,
) -> UserProfile:
    """Self may rename; users:update in a shared org may rename or (de)activate."""
    target = await find_profile(target_uid, session)
    if not target:
        raise NotFound("User not found")

    is_self = target.uid == requester.uid
    needs_admin = req.is_active is not None or not is_self
    if needs_admin and not await _shared_org_role(
        requester, target, permissions, "update", session
    ):
        raise PermissionDenied()

    if req.display_name is not None:
        target.display_name = req.display_name.strip()
    if req.is_active is not None:
        target.is_active = req.is_active

    target.updated_at = utcnow()
    session.add(target)
    await session.flush()

    log.info("user.updated", uid=target.uid, by=requester.uid)
    return target


async def delete_account(
    target_uid: str,
    requester: UserProfile,
    permissions: PermissionTable,
    session: AsyncSession,
) -> None:
    """Hard-delete a profile with its memberships and leads.

    Allowed for the account owner, or for a member with users:delete in the
    target's active organization. Organizations where the target is the sole
    member are soft-deleted with it; organizations where the target is the
    last admin among other members block the removal.
    """
    target = await find_profile(target_uid, session)
    if not target:
        raise NotFound("User not found")

    if target.uid != requester.uid:
        allowed = False
        if target.organization_id is not None:
            membership = await find_active_membership(
                target.organization_id, requester.email, session
            )
            allowed = membership is not None and permissions.is_allowed(
                membership.role, "users", "delete"
            )
        if not allowed:
            raise PermissionDenied()

    result = await session.execute(
        select(OrganizationMember).where(OrganizationMember.email == target.email)
    )
    memberships = list(result.scalars().all())

    orphaned: list[Organization] = []
    for membership in memberships:
        org = await session.get(Organization, membership.organization_id)
        if not org or not org.is_active or not membership.is_active:
            continue
        others = [m for m in await list_members(org.id, session) if m.id != membership.id]
        if not others:
            orphaned.append(org)
        elif membership.role == Role.ADMIN.value and not any(
            m.role == Role.ADMIN.value for m in others
        ):
            raise Conflict(
                f"Assign another admin in {org.name} before removing this account",
                code="LAST_ADMIN",
            )

    for org in orphaned:
        org.is_active = False
        org.deleted_at = utcnow()
        org.deleted_by = requester.uid
        session.add(org)

    for membership in memberships:
        await session.delete(membership)
    await session.execute(delete(Lead).where(Lead.created_by == target.email))
    await session.delete(target)
    await session.flush()

    log.info(
        "user.deleted",
        uid=target_uid,
        by=requester.uid,
        memberships=len(memberships),
        orgs_closed=[str(org.id) for org in orphaned],
    )


async def active_role(profile: UserProfile, session: AsyncSession) -> Optional[str]:
    """Role of the profile in its active organization, from the membership row."""
    if profile.organization_id is None:
        return None
    membership = await find_active_membership(profile.organization_id, profile.email, session)
    if membership is None:
        return None
    org = await session.get(Organization, profile.organization_id)
    if org is None or not org.is_active:
        return None
    return membership.role

