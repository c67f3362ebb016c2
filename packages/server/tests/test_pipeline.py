"""
Integration tests for pipeline steps.

Tests cover:
- Create / bulk create with contiguous ordering
- Reorder validation
- Rename and delete keep lead stages consistent
- The last step cannot be removed
- Role checks
- Tags: case-insensitive names, soft delete
"""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError

from app.models.pipeline_tag import PipelineTag
from leadflow_shared.schemas.pipeline import (
    PipelineStepCreate,
    PipelineStepUpdate,
    PipelineTagCreate,
)


def _steps_url(org_id: str) -> str:
    return f"/api/v1/orgs/{org_id}/pipeline/steps"


async def _bulk(client, headers, org_id, *titles):
    resp = await client.post(
        f"{_steps_url(org_id)}/bulk",
        json={"steps": [{"title": title} for title in titles]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestPipelineSchemas:
    def test_title_is_stripped(self):
        assert PipelineStepCreate(title="  New  ").title == "New"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            PipelineStepCreate(title="   ")
        with pytest.raises(ValidationError):
            PipelineStepUpdate(title="  ")

    def test_update_fields_optional(self):
        assert PipelineStepUpdate().model_dump(exclude_unset=True) == {}


class TestCreateSteps:
    async def test_new_org_has_no_steps(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        resp = await client.get(_steps_url(org_id), headers=admin)
        assert resp.status_code == 200
        assert resp.json()["data"] == []

    async def test_steps_are_appended(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await _bulk(client, admin, org_id, "New", "Contacted")

        resp = await client.post(
            _steps_url(org_id), json={"title": "Won", "color": "green"}, headers=admin
        )
        assert resp.status_code == 201
        assert resp.json()["order"] == 3

        resp = await client.get(_steps_url(org_id), headers=admin)
        steps = resp.json()["data"]
        assert [(s["title"], s["order"]) for s in steps] == [
            ("New", 1), ("Contacted", 2), ("Won", 3),
        ]

    async def test_bulk_skips_blank_titles(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "New", "  ", "Won")
        assert [s["title"] for s in steps] == ["New", "Won"]
        assert [s["order"] for s in steps] == [1, 2]

    async def test_bulk_of_only_blanks_rejected(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        resp = await client.post(
            f"{_steps_url(org_id)}/bulk", json={"steps": [{"title": ""}]}, headers=admin
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_FAILED"

    @pytest.mark.parametrize("role", ["user", "viewer"])
    async def test_non_admin_cannot_create(self, client, onboard, invite_and_accept, role):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        member = await invite_and_accept(admin, org_id, "m@x.com", role=role)
        resp = await client.post(_steps_url(org_id), json={"title": "X"}, headers=member)
        assert resp.status_code == 403

    async def test_members_can_read(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await _bulk(client, admin, org_id, "New")
        viewer = await invite_and_accept(admin, org_id, "v@x.com", role="viewer")
        resp = await client.get(_steps_url(org_id), headers=viewer)
        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 1


class TestReorder:
    async def test_reorder(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "A", "B", "C")
        ids = [s["id"] for s in steps]

        resp = await client.put(
            f"{_steps_url(org_id)}/order",
            json={"step_ids": [ids[2], ids[0], ids[1]]},
            headers=admin,
        )
        assert resp.status_code == 200
        assert [s["title"] for s in resp.json()["data"]] == ["C", "A", "B"]
        assert [s["order"] for s in resp.json()["data"]] == [1, 2, 3]

    async def test_partial_list_rejected(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "A", "B")
        resp = await client.put(
            f"{_steps_url(org_id)}/order", json={"step_ids": [steps[0]["id"]]}, headers=admin
        )
        assert resp.status_code == 400

    async def test_duplicates_rejected(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "A", "B")
        first = steps[0]["id"]
        resp = await client.put(
            f"{_steps_url(org_id)}/order",
            json={"step_ids": [first, first, steps[1]["id"]]},
            headers=admin,
        )
        assert resp.status_code == 400


class TestUpdateAndDelete:
    async def test_rename_restages_leads(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "New", "Won")
        await client.post(
            f"/api/v1/orgs/{org_id}/leads",
            json={"leads": [{"name": "Lin", "stage": "New"}]},
            headers=admin,
        )

        resp = await client.put(
            f"{_steps_url(org_id)}/{steps[0]['id']}", json={"title": "Fresh"}, headers=admin
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Fresh"
        assert resp.json()["order"] == 1

        leads = (await client.get(f"/api/v1/orgs/{org_id}/leads", headers=admin)).json()["data"]
        assert [lead["stage"] for lead in leads] == ["Fresh"]

    async def test_delete_renumbers_and_restages(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "New", "Contacted", "Won")
        await client.post(
            f"/api/v1/orgs/{org_id}/leads",
            json={"leads": [{"name": "Lin", "stage": "Contacted"}]},
            headers=admin,
        )

        resp = await client.delete(f"{_steps_url(org_id)}/{steps[1]['id']}", headers=admin)
        assert resp.status_code == 200

        remaining = (await client.get(_steps_url(org_id), headers=admin)).json()["data"]
        assert [(s["title"], s["order"]) for s in remaining] == [("New", 1), ("Won", 2)]

        leads = (await client.get(f"/api/v1/orgs/{org_id}/leads", headers=admin)).json()["data"]
        assert leads[0]["stage"] == "New"

    async def test_last_step_cannot_be_deleted(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        steps = await _bulk(client, admin, org_id, "Only")
        resp = await client.delete(f"{_steps_url(org_id)}/{steps[0]['id']}", headers=admin)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "LAST_PIPELINE_STEP"

    async def test_step_from_other_org_not_found(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        other, other_org = await onboard("eve@evil.com", "Evil")
        steps = await _bulk(client, other, other_org, "Theirs")
        resp = await client.put(
            f"{_steps_url(org_id)}/{steps[0]['id']}", json={"title": "Mine"}, headers=admin
        )
        assert resp.status_code == 404

    async def test_unknown_step(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        resp = await client.delete(f"{_steps_url(org_id)}/{uuid.uuid4()}", headers=admin)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def _tags_url(org_id: str) -> str:
    return f"/api/v1/orgs/{org_id}/pipeline/tags"


async def _tag(client, headers, org_id, name, description="d"):
    resp = await client.post(
        _tags_url(org_id), json={"name": name, "description": description}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestTagSchemas:
    def test_fields_are_stripped(self):
        tag = PipelineTagCreate(name="  Hot  ", description=" warm lead ")
        assert (tag.name, tag.description) == ("Hot", "warm lead")

    def test_blank_description_rejected(self):
        with pytest.raises(ValidationError):
            PipelineTagCreate(name="Hot", description="  ")


class TestTags:
    async def test_create_and_list(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await _tag(client, admin, org_id, "Hot")
        await _tag(client, admin, org_id, "Cold")

        resp = await client.get(_tags_url(org_id), headers=admin)
        assert resp.status_code == 200
        tags = resp.json()["data"]
        assert {tag["name"] for tag in tags} == {"Hot", "Cold"}
        assert all(tag["created_by"] == "admin@acme.com" for tag in tags)

    async def test_duplicate_name_ignores_case(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        await _tag(client, admin, org_id, "Hot")

        resp = await client.post(
            _tags_url(org_id), json={"name": "HOT", "description": "d"}, headers=admin
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "TAG_EXISTS"

    async def test_same_name_allowed_in_other_org(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        other, other_org = await onboard("eve@evil.com", "Evil")
        await _tag(client, admin, org_id, "Hot")
        await _tag(client, other, other_org, "Hot")

        resp = await client.get(_tags_url(org_id), headers=admin)
        assert len(resp.json()["data"]) == 1

    async def test_update_keeps_own_name(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        tag = await _tag(client, admin, org_id, "Hot")
        await _tag(client, admin, org_id, "Cold")

        resp = await client.put(
            f"{_tags_url(org_id)}/{tag['id']}",
            json={"name": "hot", "description": "renamed"},
            headers=admin,
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "hot"
        assert resp.json()["description"] == "renamed"

        resp = await client.put(
            f"{_tags_url(org_id)}/{tag['id']}",
            json={"name": "Cold", "description": "clash"},
            headers=admin,
        )
        assert resp.status_code == 409

    async def test_delete_is_soft_and_frees_name(self, client, onboard, session):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        tag = await _tag(client, admin, org_id, "Hot")

        resp = await client.delete(f"{_tags_url(org_id)}/{tag['id']}", headers=admin)
        assert resp.status_code == 200
        assert (await client.get(_tags_url(org_id), headers=admin)).json()["data"] == []

        stored = await session.get(PipelineTag, uuid.UUID(tag["id"]))
        assert stored.is_active is False

        await _tag(client, admin, org_id, "Hot")

    async def test_missing_tag(self, client, onboard):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        other, other_org = await onboard("eve@evil.com", "Evil")
        theirs = await _tag(client, other, other_org, "Theirs")

        resp = await client.put(
            f"{_tags_url(org_id)}/{theirs['id']}",
            json={"name": "Mine", "description": "d"},
            headers=admin,
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Pipeline tag not found"
        resp = await client.delete(f"{_tags_url(org_id)}/{uuid.uuid4()}", headers=admin)
        assert resp.status_code == 404

    async def test_members_read_but_cannot_write(self, client, onboard, invite_and_accept):
        admin, org_id = await onboard("admin@acme.com", "Acme")
        tag = await _tag(client, admin, org_id, "Hot")
        user = await invite_and_accept(admin, org_id, "u@x.com", role="user")

        resp = await client.get(_tags_url(org_id), headers=user)
        assert resp.status_code == 200
        resp = await client.post(
            _tags_url(org_id), json={"name": "Mine", "description": "d"}, headers=user
        )
        assert resp.status_code == 403
        resp = await client.delete(f"{_tags_url(org_id)}/{tag['id']}", headers=user)
        assert resp.status_code == 403
