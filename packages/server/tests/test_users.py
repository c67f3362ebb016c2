"""
Integration tests for user profiles and account removal.

Tests cover:
- Own profile with derived organization list
- Org user listing for admins vs regular users
- Profile updates (self rename, admin-only activation changes)
- Account deletion guards and cascades
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlmodel import select

from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user import UserProfile
from leadflow_shared.schemas.users import UserUpdateRequest


class TestUserSchemas:
    def test_empty_display_name_rejected(self):
        with pytest.raises(ValidationError):
            UserUpdateRequest(display_name="")

    def test_all_fields_optional(self):
        req = UserUpdateRequest()
        assert req.display_name is None
        assert req.is_active is None


class TestOwnProfile:
    async def test_me_lists_organizations(self, client, onboard, create_org):
        headers, first = await onboard("ada@acme.com", "Acme")
        second = await create_org(headers, "Acme Labs")

        resp = await client.get("/api/v1/users/me", headers=headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["email"] == "ada@acme.com"
        assert body["role"] == "admin"
        assert body["organization_ids"] == [first, second]

    async def test_me_requires_onboarding(self, client, headers_for):
        resp = await client.get("/api/v1/users/me", headers=headers_for("uid-n", "n@x.com"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ONBOARDING_REQUIRED"


class TestListUsers:
    async def test_admin_sees_every_member(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await invite_and_accept(admin, org_id, "u@x.com", role="user")

        resp = await client.get(f"/api/v1/orgs/{org_id}/users", headers=admin)
        assert resp.status_code == 200
        by_email = {item["email"]: item["role"] for item in resp.json()["data"]}
        assert by_email == {"admin@acme.com": "admin", "u@x.com": "user"}

    async def test_user_sees_only_self(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", role="user")

        resp = await client.get(f"/api/v1/orgs/{org_id}/users", headers=user)
        assert resp.status_code == 200
        assert [item["email"] for item in resp.json()["data"]] == ["u@x.com"]

    async def test_member_without_profile_is_listed(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        resp = await client.post(
            f"/api/v1/orgs/{org_id}/members",
            json={"email": "ghost@x.com", "uid": "uid-ghost", "role": "viewer"},
            headers=admin,
        )
        assert resp.status_code == 201

        resp = await client.get(f"/api/v1/orgs/{org_id}/users", headers=admin)
        ghost = next(item for item in resp.json()["data"] if item["email"] == "ghost@x.com")
        assert ghost["uid"] == "uid-ghost"
        assert ghost["role"] == "viewer"
        assert ghost["display_name"] == ""

    async def test_outsider_gets_not_found(self, client, onboard):
        _, org_id = await onboard("admin@acme.com", "Acme")
        other, _ = await onboard("eve@evil.com", "Evil")
        resp = await client.get(f"/api/v1/orgs/{org_id}/users", headers=other)
        assert resp.status_code == 404


class TestUserByEmail:
    async def test_finds_member_with_org_role(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await invite_and_accept(admin, org_id, "u@x.com", role="viewer", uid="uid-u")

        resp = await client.get(
            f"/api/v1/orgs/{org_id}/users/by-email",
            params={"email": " U@X.com "},
            headers=admin,
        )
        assert resp.status_code == 200
        assert resp.json()["uid"] == "uid-u"
        assert resp.json()["role"] == "viewer"
        assert resp.json()["organization_id"] == org_id

    async def test_user_in_another_org_not_found(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await onboard("eve@evil.com", "Evil")

        resp = await client.get(
            f"/api/v1/orgs/{org_id}/users/by-email",
            params={"email": "eve@evil.com"},
            headers=admin,
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == {
            "code": "NOT_FOUND", "message": "User not found", "status": 404,
        }

    async def test_deactivated_user_not_found(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")
        await client.patch("/api/v1/users/uid-u", json={"is_active": False}, headers=admin)

        resp = await client.get(
            f"/api/v1/orgs/{org_id}/users/by-email",
            params={"email": "u@x.com"},
            headers=admin,
        )
        assert resp.status_code == 404

    async def test_requires_users_read(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", role="user")

        resp = await client.get(
            f"/api/v1/orgs/{org_id}/users/by-email",
            params={"email": "admin@acme.com"},
            headers=user,
        )
        assert resp.status_code == 403


class TestUpdateProfile:
    async def test_rename_self(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")

        resp = await client.patch(
            "/api/v1/users/uid-u", json={"display_name": "  Una  "}, headers=user
        )
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Una"
        assert resp.json()["role"] == "user"

    async def test_user_cannot_deactivate_self(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")
        resp = await client.patch("/api/v1/users/uid-u", json={"is_active": False}, headers=user)
        assert resp.status_code == 403

    async def test_user_cannot_rename_others(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme", uid="uid-admin")
        user = await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")
        resp = await client.patch(
            "/api/v1/users/uid-admin", json={"display_name": "Boss"}, headers=user
        )
        assert resp.status_code == 403

    async def test_admin_deactivates_member(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")

        resp = await client.patch("/api/v1/users/uid-u", json={"is_active": False}, headers=admin)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        resp = await client.get("/api/v1/users/me", headers=user)
        assert resp.status_code == 403

    async def test_unknown_user(self, client, onboard):
        admin, _ = await onboard("admin@acme.com", "Acme")
        resp = await client.patch("/api/v1/users/nobody", json={"display_name": "X"}, headers=admin)
        assert resp.status_code == 404


class TestDeleteAccount:
    async def test_member_deletes_own_account(
        self, client, onboard, invite_and_accept, session
    ):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        user = await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")

        resp = await client.delete("/api/v1/users/uid-u", headers=user)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Account deleted"

        assert (
            await session.execute(select(UserProfile).where(UserProfile.uid == "uid-u"))
        ).scalar_one_or_none() is None
        members = (
            await session.execute(
                select(OrganizationMember).where(OrganizationMember.email == "u@x.com")
            )
        ).scalars().all()
        assert members == []

    async def test_last_admin_with_members_is_blocked(
        self, client, onboard, invite_and_accept
    ):
        admin, org_id = await onboard("admin@acme.com", "Acme", uid="uid-admin")
        await invite_and_accept(admin, org_id, "u@x.com")

        resp = await client.delete("/api/v1/users/uid-admin", headers=admin)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "LAST_ADMIN"

    async def test_sole_member_closes_organization(self, client, onboard, session):
        admin, org_id = await onboard("solo@acme.com", "Solo", uid="uid-solo")

        resp = await client.delete("/api/v1/users/uid-solo", headers=admin)
        assert resp.status_code == 200

        result = await session.execute(select(Organization))
        org = result.scalar_one()
        assert str(org.id) == org_id
        assert org.is_active is False
        assert org.deleted_by == "uid-solo"

    async def test_user_cannot_delete_others(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme", uid="uid-admin")
        user = await invite_and_accept(admin, org_id, "u@x.com")
        resp = await client.delete("/api/v1/users/uid-admin", headers=user)
        assert resp.status_code == 403

    async def test_admin_deletes_member(self, client, onboard, invite_and_accept, session):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await invite_and_accept(admin, org_id, "u@x.com", uid="uid-u")

        resp = await client.delete("/api/v1/users/uid-u", headers=admin)
        assert resp.status_code == 200
        assert (
            await session.execute(select(UserProfile).where(UserProfile.uid == "uid-u"))
        ).scalar_one_or_none() is None
