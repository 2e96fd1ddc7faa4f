"""Tests for the Redis session store"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from shared.sessions import SESSION_PREFIX, USER_SESSIONS_PREFIX, SessionManager, describe_user_agent

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestDescribeUserAgent:

    def test_desktop_browser(self):
        device, browser = describe_user_agent(CHROME_MAC)
        assert browser.startswith("Chrome 120")
        assert "Mac" in device

    def test_empty_user_agent(self):
        device, browser = describe_user_agent("")
        assert browser == "Unknown"
        assert device


class TestSessionManager:

    async def test_create_and_get(self, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")

        assert session.user_id == str(user.id)
        assert session.ip == "10.0.0.1"
        assert session.location == "Unknown"
        assert session.expires_at > session.created_at

        stored = await session_manager.get_session(session.id)
        assert stored == session
        assert await fake_redis.sismember(f"{USER_SESSIONS_PREFIX}{user.id}", session.id)
        assert await fake_redis.ttl(f"{SESSION_PREFIX}{session.id}") > 0

    async def test_get_missing_session(self, session_manager):
        assert await session_manager.get_session("missing") is None
        assert await session_manager.update_session_activity("missing") is None

    async def test_update_activity(self, session_manager, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")

        updated = await session_manager.update_session_activity(session.id)

        assert updated.last_active >= session.last_active
        assert (await session_manager.get_session(session.id)).last_active == updated.last_active

    async def test_user_sessions_most_recent_first(self, session_manager, user):
        older = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        newer = await session_manager.create_session(user, "curl/8.0", "10.0.0.2")
        await session_manager.update_session_activity(newer.id)

        sessions = await session_manager.get_user_sessions(str(user.id))

        assert [s.id for s in sessions] == [newer.id, older.id]

    async def test_stale_ids_are_pruned(self, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        await fake_redis.delete(f"{SESSION_PREFIX}{session.id}")

        assert await session_manager.get_user_sessions(str(user.id)) == []
        assert await fake_redis.scard(f"{USER_SESSIONS_PREFIX}{user.id}") == 0

    async def _lapse(self, fake_redis, session):
        key = f"{SESSION_PREFIX}{session.id}"
        data = json.loads(await fake_redis.get(key))
        data["expires_at"] = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        await fake_redis.set(key, json.dumps(data), ex=3600)

    async def test_lapsed_sessions_are_not_listed(self, session_manager, fake_redis, user):
        live = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        lapsed = await session_manager.create_session(user, CHROME_MAC, "10.0.0.2")
        await self._lapse(fake_redis, lapsed)

        sessions = await session_manager.get_user_sessions(str(user.id))

        assert [s.id for s in sessions] == [live.id]
        assert not await fake_redis.sismember(f"{USER_SESSIONS_PREFIX}{user.id}", lapsed.id)
        assert not await fake_redis.exists(f"{SESSION_PREFIX}{lapsed.id}")

    async def test_lapsed_session_is_not_refreshed(self, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        await self._lapse(fake_redis, session)

        assert await session_manager.update_session_activity(session.id) is None
        assert await session_manager.get_session(session.id) is None

    async def test_refreshed_ttl_stops_at_expiry(self, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        key = f"{SESSION_PREFIX}{session.id}"
        data = json.loads(await fake_redis.get(key))
        data["expires_at"] = (datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat()
        await fake_redis.set(key, json.dumps(data), ex=3600)

        await session_manager.update_session_activity(session.id)

        assert 0 < await fake_redis.ttl(key) <= 300

    async def test_revoke_session(self, session_manager, fake_redis, user):
        session = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")

        assert await session_manager.revoke_session(session.id) is True
        assert await session_manager.get_session(session.id) is None
        assert not await fake_redis.sismember(f"{USER_SESSIONS_PREFIX}{user.id}", session.id)
        assert await session_manager.revoke_session(session.id) is False

    async def test_revoke_all_except_current(self, session_manager, user, other_user):
        keep = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        await session_manager.create_session(user, CHROME_MAC, "10.0.0.2")
        await session_manager.create_session(user, CHROME_MAC, "10.0.0.3")
        unrelated = await session_manager.create_session(other_user, CHROME_MAC, "10.0.0.4")

        revoked = await session_manager.revoke_all_user_sessions(str(user.id), except_session_id=keep.id)

        assert revoked == 2
        assert [s.id for s in await session_manager.get_user_sessions(str(user.id))] == [keep.id]
        assert await session_manager.get_session(unrelated.id) is not None

    async def test_cleanup_expired_sessions(self, session_manager, fake_redis, user):
        live = await session_manager.create_session(user, CHROME_MAC, "10.0.0.1")
        expired = await session_manager.create_session(user, CHROME_MAC, "10.0.0.2")

        # Simulate a document that outlived its expiry
        data = json.loads(await fake_redis.get(f"{SESSION_PREFIX}{expired.id}"))
        data["expires_at"] = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        await fake_redis.set(f"{SESSION_PREFIX}{expired.id}", json.dumps(data))

        assert await session_manager.cleanup_expired_sessions() == 1
        assert await session_manager.get_session(expired.id) is None
        assert await session_manager.get_session(live.id) is not None

    async def test_custom_ttl(self, fake_redis, user):
        manager = SessionManager(fake_redis, session_ttl_seconds=60)

        session = await manager.create_session(user, CHROME_MAC, "10.0.0.1")

        assert (session.expires_at - session.created_at) == timedelta(seconds=60)
        assert await fake_redis.ttl(f"{SESSION_PREFIX}{session.id}") <= 60
