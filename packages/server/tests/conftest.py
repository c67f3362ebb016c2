"""
Shared fixtures: in-memory SQLite, the app with its session overridden,
identity tokens, and a mocked invitation notifier.
"""

from __future__ import annotations

import os

os.environ.setdefault("LF_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LF_LOG_FORMAT", "console")

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

import app.models  # noqa: F401  (registers tables)
from app.core.auth import issue_identity_token
from app.core.database import (
    build_engine,
    get_session,
    init_db,
    make_session_factory,
    session_scope,
)
from app.core.notifications import get_notifier
from app.main import app


# ---------------------------------------------------------------------------
# Database: in-memory SQLite for fast tests
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    mock = AsyncMock()
    mock.send_invitation = AsyncMock(return_value=True)
    return mock


@pytest.fixture
async def client(session_factory, notifier):
    async def override_get_session():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------

def bearer(uid: str, email: str, name: str | None = None) -> dict:
    return {"Authorization": f"Bearer {issue_identity_token(uid, email, name)}"}


@pytest.fixture
def headers_for():
    return bearer


@pytest.fixture
def onboard(client):
    """Onboard a principal into a new org; returns (headers, org_id)."""

    async def _onboard(email: str, org_name: str, uid: str | None = None):
        headers = bearer(uid or f"uid-{uuid.uuid4().hex[:8]}", email)
        resp = await client.post("/api/v1/onboarding", json={"name": org_name}, headers=headers)
        assert resp.status_code == 201, resp.text
        return headers, resp.json()["organization"]["id"]

    return _onboard


@pytest.fixture
def create_org(client):
    """Create an additional org for an onboarded principal; returns its id."""

    async def _create(headers: dict, name: str) -> str:
        resp = await client.post("/api/v1/orgs", json={"name": name}, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    return _create


@pytest.fixture
def invite_and_accept(client, notifier):
    """Invite email into org_id and accept as (uid, email); returns headers."""

    async def _invite(admin_headers: dict, org_id: str, email: str, role: str = "user", uid=None):
        resp = await client.post(
            f"/api/v1/orgs/{org_id}/invitations",
            json={"email": email, "role": role},
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.text
        token = notifier.send_invitation.call_args.kwargs["join_link"].split("token=")[1]
        headers = bearer(uid or f"uid-{uuid.uuid4().hex[:8]}", email)
        resp = await client.post(
            "/api/v1/invitations/accept", json={"token": token}, headers=headers
        )
        assert resp.status_code == 200, resp.text
        return headers

    return _invite
