"""
One-shot migration from domain-based teams to explicit organizations.

Older profiles carry ``legacy_team_id``:

- equal to the email domain: the profile predates organizations and is
  deleted, so the user goes through onboarding on next sign-in;
- naming an active organization the user is a member of: the profile is
  switched into it.

``legacy_team_id`` is cleared on every processed profile, so running the
script twice changes nothing the second time. Organization names are never
compared.

Usage:
    python -m app.scripts.migrate_legacy_teams [--dry-run]
"""

import argparse
import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import find_active_membership
from app.core.config import get_settings
from app.core.database import session_scope
from app.core.logging import configure_logging
from app.models.organization import Organization
from app.models.user import UserProfile
from app.services.organizations import set_active_organization

log = structlog.get_logger()


@dataclass
class MigrationSummary:
    processed: int = 0
    deleted: int = 0
    linked: int = 0
    cleared: int = 0


def _email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower()


def _as_org_id(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def migrate_legacy_teams(session: AsyncSession, dry_run: bool = False) -> MigrationSummary:
    summary = MigrationSummary()
    result = await session.execute(
        select(UserProfile).where(UserProfile.legacy_team_id.is_not(None))
    )

    for profile in result.scalars().all():
        summary.processed += 1
        team = profile.legacy_team_id.strip().lower()

        if team == _email_domain(profile.email):
            summary.deleted += 1
            log.info("migration.profile_deleted", uid=profile.uid, dry_run=dry_run)
            if not dry_run:
                await session.delete(profile)
            continue

        org_id = _as_org_id(profile.legacy_team_id.strip())
        membership = None
        if org_id is not None:
            org = await session.get(Organization, org_id)
            if org is not None and org.is_active:
                membership = await find_active_membership(org.id, profile.email, session)

        if membership is not None:
            summary.linked += 1
            log.info("migration.profile_linked", uid=profile.uid, org_id=str(org_id), dry_run=dry_run)
            if not dry_run:
                set_active_organization(profile, org_id, membership.role)
        else:
            summary.cleared += 1
            log.info("migration.team_unresolved", uid=profile.uid, dry_run=dry_run)

        if not dry_run:
            profile.legacy_team_id = None
            session.add(profile)

    await session.flush()
    return summary


async def run(dry_run: bool) -> MigrationSummary:
    async with session_scope() as session:
        summary = await migrate_legacy_teams(session, dry_run=dry_run)
        if dry_run:
            await session.rollback()
    log.info(
        "migration.finished",
        dry_run=dry_run,
        processed=summary.processed,
        deleted=summary.deleted,
        linked=summary.linked,
        cleared=summary.cleared,
    )
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Migrate legacy domain-based teams.")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing them")

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(run(args.dry_run))
