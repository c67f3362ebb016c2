"""
System endpoint tests: liveness, readiness against the store, API root,
the headers every response carries, and the session helpers.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import select

from app.core.database import build_engine, get_session, session_scope
from app.core.middleware import API_CSP, DOCS_CSP, HSTS, REQUEST_ID_HEADER
from app.main import app
from app.models.organization import Organization


class TestLiveness:
    async def test_health_check(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestReadiness:
    async def test_ready_when_database_answers(self, client):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ready"}

    async def test_unavailable_when_database_fails(self, client):
        broken = MagicMock()
        broken.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        async def broken_session():
            yield broken

        app.dependency_overrides[get_session] = broken_session
        resp = await client.get("/ready")
        assert resp.status_code == 503
        assert resp.json() == {"status": "unavailable"}
        broken.execute.assert_awaited_once()


class TestApiRoot:
    async def test_lists_endpoints(self, client):
        resp = await client.get("/api/v1/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["api"] == "v1"
        assert {
            "/onboarding",
            "/orgs/{orgId}/members",
            "/orgs/{orgId}/users/by-email",
            "/orgs/{orgId}/pipeline/steps",
            "/orgs/{orgId}/pipeline/tags",
            "/orgs/{orgId}/leads",
            "/invitations/accept",
        } <= set(body["endpoints"])

    async def test_listed_endpoints_are_routed(self, client):
        routed = {route.path for route in app.routes}
        for endpoint in (await client.get("/api/v1/")).json()["endpoints"]:
            assert f"/api/v1{endpoint}" in routed, endpoint


class TestResponseHeaders:
    async def test_api_response_headers(self, client):
        resp = await client.get("/health")
        assert resp.headers["Content-Security-Policy"] == API_CSP
        assert resp.headers["Strict-Transport-Security"] == HSTS
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert len(resp.headers[REQUEST_ID_HEADER]) == 32

    async def test_docs_allow_cdn(self, client):
        resp = await client.get("/docs")
        assert resp.status_code == 200
        assert resp.headers["Content-Security-Policy"] == DOCS_CSP

    async def test_request_id_survives_errors(self, client):
        resp = await client.get("/api/v1/users/me", headers={REQUEST_ID_HEADER: "trace-42"})
        assert resp.status_code == 401
        assert resp.headers[REQUEST_ID_HEADER] == "trace-42"


class TestDatabaseHelpers:
    async def test_memory_sqlite_shares_one_connection(self):
        engine = build_engine("sqlite+aiosqlite://")
        assert isinstance(engine.sync_engine.pool, StaticPool)
        await engine.dispose()

    async def test_file_sqlite_uses_regular_pool(self, tmp_path):
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'lf.db'}")
        assert not isinstance(engine.sync_engine.pool, StaticPool)
        await engine.dispose()

    async def test_session_scope_commits(self, session_factory, session):
        async with session_scope(session_factory) as scoped:
            scoped.add(Organization(name="Kept", created_by="uid-a"))

        result = await session.execute(select(Organization).where(Organization.name == "Kept"))
        assert result.scalar_one_or_none() is not None

    async def test_session_scope_rolls_back_on_error(self, session_factory, session):
        with pytest.raises(RuntimeError):
            async with session_scope(session_factory) as scoped:
                scoped.add(Organization(name="Dropped", created_by="uid-a"))
                await scoped.flush()
                raise RuntimeError("boom")

        result = await session.execute(select(Organization).where(Organization.name == "Dropped"))
        assert result.scalar_one_or_none() is None
