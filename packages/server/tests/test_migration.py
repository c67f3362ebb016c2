"""
Tests for the legacy team migration script.
"""

from __future__ import annotations

import uuid

from sqlmodel import select

from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from app.scripts.migrate_legacy_teams import migrate_legacy_teams


async def _seed(session):
    org = Organization(name="Acme", created_by="uid-linked")
    session.add(org)
    await session.flush()
    session.add(
        OrganizationMember(
            organization_id=org.id, email="linked@acme.com", uid="uid-linked", role="user"
        )
    )
    session.add_all(
        [
            UserProfile(uid="uid-domain", email="old@acme.com", legacy_team_id="acme.com"),
            UserProfile(uid="uid-linked", email="linked@acme.com", legacy_team_id=str(org.id)),
            UserProfile(
                uid="uid-stray", email="stray@acme.com", legacy_team_id=str(uuid.uuid4())
            ),
            UserProfile(uid="uid-current", email="current@acme.com"),
        ]
    )
    await session.commit()
    return org


async def _profiles(session) -> dict:
    result = await session.execute(select(UserProfile))
    return {profile.uid: profile for profile in result.scalars().all()}


class TestMigrateLegacyTeams:
    async def test_migrates_each_kind(self, session):
        org = await _seed(session)

        summary = await migrate_legacy_teams(session)
        await session.commit()

        assert summary.processed == 3
        assert summary.deleted == 1
        assert summary.linked == 1
        assert summary.cleared == 1

        profiles = await _profiles(session)
        assert set(profiles) == {"uid-linked", "uid-stray", "uid-current"}
        assert profiles["uid-linked"].organization_id == org.id
        assert profiles["uid-linked"].role == "user"
        assert profiles["uid-stray"].organization_id is None
        assert all(profile.legacy_team_id is None for profile in profiles.values())

    async def test_second_run_is_a_no_op(self, session):
        await _seed(session)
        await migrate_legacy_teams(session)
        await session.commit()

        summary = await migrate_legacy_teams(session)
        assert summary.processed == 0
        assert len(await _profiles(session)) == 3

    async def test_dry_run_writes_nothing(self, session):
        await _seed(session)

        summary = await migrate_legacy_teams(session, dry_run=True)
        await session.commit()

        assert summary.deleted == 1
        assert summary.linked == 1
        profiles = await _profiles(session)
        assert len(profiles) == 4
        assert profiles["uid-linked"].organization_id is None
        assert profiles["uid-domain"].legacy_team_id == "acme.com"

    async def test_inactive_org_is_not_linked(self, session):
        org = await _seed(session)
        org.is_active = False
        session.add(org)
        await session.commit()

        summary = await migrate_legacy_teams(session)
        assert summary.linked == 0
        assert summary.cleared == 2
