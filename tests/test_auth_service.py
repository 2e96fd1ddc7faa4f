"""Tests for the Session Service API and the request authentication dependencies"""

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from services.auth_service.main import app
from shared.models import AuditLog
from shared.sessions import SESSION_PREFIX


@pytest.fixture
def client(api_client):
    return api_client(app)


class TestCreateSession:

    async def test_create_session_sets_cookie(self, client, user):
        response = await client.post(
            "/sessions", json={"user_id": str(user.id)}, headers={"User-Agent": "curl/8.4.0"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == str(user.id)
        assert data["current"] is True
        assert response.cookies.get("session_id") == data["id"]

    async def test_cookie_authenticates_follow_up_requests(self, client, user):
        created = (await client.post("/sessions", json={"user_id": str(user.id)})).json()

        response = await client.get("/sessions/me")

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    async def test_unknown_user(self, client):
        response = await client.post("/sessions", json={"user_id": str(uuid.uuid4())})
        assert response.status_code == 401

    async def test_inactive_user(self, client, user, test_session):
        user.is_active = False
        await test_session.flush()

        response = await client.post("/sessions", json={"user_id": str(user.id)})
        assert response.status_code == 401


class TestSessionLookup:

    async def test_me_requires_session(self, client):
        response = await client.get("/sessions/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    async def test_unknown_session_id(self, client):
        response = await client.get("/sessions/me", headers={"X-Session-ID": "bogus"})
        assert response.status_code == 401

    async def test_lapsed_session_is_rejected(self, client, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, "curl/8.4.0", "10.0.0.1")
        key = f"{SESSION_PREFIX}{session.id}"
        data = json.loads(await fake_redis.get(key))
        data["expires_at"] = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        await fake_redis.set(key, json.dumps(data), ex=3600)

        response = await client.get("/sessions/me", headers={"X-Session-ID": session.id})

        assert response.status_code == 401
        assert not await fake_redis.exists(key)

    async def test_list_own_sessions(self, client, user, auth_headers):
        headers = await auth_headers(user)
        await auth_headers(user)

        response = await client.get(f"/users/{user.id}/sessions", headers=headers)

        sessions = response.json()
        assert len(sessions) == 2
        assert sum(s["current"] for s in sessions) == 1

    async def test_cannot_list_other_users_sessions(self, client, user, other_user, auth_headers):
        response = await client.get(f"/users/{other_user.id}/sessions", headers=await auth_headers(user))
        assert response.status_code == 403

    async def test_admin_lists_any_user(self, client, user, admin, auth_headers):
        await auth_headers(user)
        response = await client.get(f"/users/{user.id}/sessions", headers=await auth_headers(admin))
        assert response.status_code == 200
        assert len(response.json()) == 1

    async def test_inactive_user_session_rejected(self, client, user, auth_headers, test_session):
        headers = await auth_headers(user)
        user.is_active = False
        await test_session.flush()

        response = await client.get("/permissions/me", headers=headers)
        assert response.status_code == 401


class TestRevokeSessions:

    async def test_revoke_own_session(self, client, user, auth_headers, session_manager, test_session):
        headers = await auth_headers(user)
        other = await session_manager.create_session(user, "curl/8.4.0", "10.0.0.9")

        response = await client.delete(f"/sessions/{other.id}", headers=headers)

        assert response.status_code == 204
        assert await session_manager.get_session(other.id) is None
        audit = (await test_session.execute(select(AuditLog))).scalars().one()
        assert audit.action_type == "session_revoke"
        assert audit.entity_id == other.id

    async def test_cannot_revoke_someone_elses_session(self, client, user, other_user, auth_headers, session_manager):
        target = await session_manager.create_session(other_user, "curl/8.4.0", "10.0.0.9")

        response = await client.delete(f"/sessions/{target.id}", headers=await auth_headers(user))

        assert response.status_code == 403
        assert await session_manager.get_session(target.id) is not None

    async def test_revoke_missing_session(self, client, user, auth_headers):
        response = await client.delete("/sessions/missing", headers=await auth_headers(user))
        assert response.status_code == 404

    async def test_revoke_all_except_current(self, client, user, auth_headers, session_manager):
        headers = await auth_headers(user)
        await auth_headers(user)
        await auth_headers(user)

        response = await client.delete(
            f"/users/{user.id}/sessions", params={"except_current": "true"}, headers=headers
        )

        assert response.json() == {"revoked": 2}
        remaining = await session_manager.get_user_sessions(str(user.id))
        assert [s.id for s in remaining] == [headers["X-Session-ID"]]

    async def test_cleanup_requires_admin(self, client, user, admin, auth_headers):
        assert (await client.post("/sessions/cleanup", headers=await auth_headers(user))).status_code == 403

        response = await client.post("/sessions/cleanup", headers=await auth_headers(admin))
        assert response.json() == {"revoked": 0}


class TestPermissions:

    async def test_vendor_permissions(self, client, vendor, auth_headers):
        response = await client.get("/permissions/me", headers=await auth_headers(vendor))

        data = response.json()
        assert data["role"] == "vendor"
        assert "create:products" in data["permissions"]
        assert "moderate:content" not in data["permissions"]

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "healthy", "service": "auth-service"}
