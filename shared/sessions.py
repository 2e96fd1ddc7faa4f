"""
Redis-backed session store

Each login is a separate session so users can see and revoke individual
devices. Layout:

    session:<id>             JSON document, expires with the session
    user_sessions:<user_id>  set of that user's session ids
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import redis.asyncio as redis
from fastapi import Depends
from pydantic import BaseModel
from user_agents import parse as parse_user_agent

from .config import get_config
from .redis_client import get_redis

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"


class Session(BaseModel):
    id: str
    user_id: str
    user_agent: str
    ip: str
    device: str
    browser: str
    location: str = "Unknown"
    last_active: datetime
    created_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= datetime.now(timezone.utc)


def describe_user_agent(user_agent: str) -> tuple:
    """Return ``(device, browser)`` labels for a raw User-Agent header"""
    parsed = parse_user_agent(user_agent or "")

    vendor = parsed.device.brand or ""
    model = parsed.device.model or "Unknown"
    device = f"{vendor} {model}".strip()

    family = parsed.browser.family
    if not family or family == "Other":
        family = "Unknown"
    browser = f"{family} {parsed.browser.version_string or ''}".strip()

    return device, browser


class SessionManager:
    """Create, look up and revoke per-device sessions"""

    def __init__(self, redis_client: redis.Redis, session_ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.session_ttl = session_ttl_seconds or get_config().session_ttl_seconds

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"{USER_SESSIONS_PREFIX}{user_id}"

    async def create_session(self, user, user_agent: str, ip: str) -> Session:
        device, browser = describe_user_agent(user_agent)
        now = datetime.now(timezone.utc)
        user_id = str(user.id)

        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            user_agent=user_agent or "",
            ip=ip or "",
            device=device,
            browser=browser,
            last_active=now,
            created_at=now,
            expires_at=now + timedelta(seconds=self.session_ttl),
        )

        await self.redis.set(self._session_key(session.id), session.model_dump_json(), ex=self.session_ttl)
        await self.redis.sadd(self._user_key(user_id), session.id)

        logger.info("Session created", extra={"session_id": session.id, "user_id": user_id, "device": device})
        return session

    async def _load(self, session_id: str) -> Optional[Session]:
        data = await self.redis.get(self._session_key(session_id))
        if not data:
            return None
        return Session.model_validate_json(data)

    async def _remove(self, session: Session):
        pipe = self.redis.pipeline()
        pipe.delete(self._session_key(session.id))
        pipe.srem(self._user_key(session.user_id), session.id)
        await pipe.execute()

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Stored session, or None when missing or past ``expires_at``"""
        session = await self._load(session_id)
        if session is None:
            return None

        if session.is_expired:
            await self._remove(session)
            logger.info("Expired session dropped", extra={"session_id": session.id, "user_id": session.user_id})
            return None

        return session

    async def update_session_activity(self, session_id: str) -> Optional[Session]:
        """Mark the session as used now and restart its TTL, never past ``expires_at``"""
        session = await self.get_session(session_id)
        if session is None:
            return None

        session.last_active = datetime.now(timezone.utc)
        remaining = int((session.expires_at - session.last_active).total_seconds())
        ttl = max(1, min(self.session_ttl, remaining))
        await self.redis.set(self._session_key(session_id), session.model_dump_json(), ex=ttl)
        return session

    async def get_user_sessions(self, user_id: str) -> List[Session]:
        user_key = self._user_key(str(user_id))
        session_ids = await self.redis.smembers(user_key)

        sessions = []
        stale_ids = []
        for session_id in session_ids:
            session = await self.get_session(session_id)
            if session is None:
                stale_ids.append(session_id)
            else:
                sessions.append(session)

        # Redis expired the session documents or they lapsed; drop the dangling ids
        if stale_ids:
            await self.redis.srem(user_key, *stale_ids)

        return sorted(sessions, key=lambda s: s.last_active, reverse=True)

    async def revoke_session(self, session_id: str) -> bool:
        session = await self._load(session_id)
        if session is None:
            return False

        await self._remove(session)

        logger.info("Session revoked", extra={"session_id": session_id, "user_id": session.user_id})
        return True

    async def revoke_all_user_sessions(self, user_id: str, except_session_id: Optional[str] = None) -> int:
        revoked = 0
        for session in await self.get_user_sessions(user_id):
            if session.id == except_session_id:
                continue
            if await self.revoke_session(session.id):
                revoked += 1
        return revoked

    async def cleanup_expired_sessions(self) -> int:
        """Revoke sessions whose expiry has passed but whose key is still present"""
        revoked = 0
        async for key in self.redis.scan_iter(match=f"{SESSION_PREFIX}*"):
            data = await self.redis.get(key)
            if not data:
                continue

            session = Session.model_validate_json(data)
            if session.is_expired and await self.revoke_session(session.id):
                revoked += 1

        if revoked:
            logger.info(f"Cleaned up {revoked} expired sessions")
        return revoked


def get_session_manager(redis_client: redis.Redis = Depends(get_redis)) -> SessionManager:
    """FastAPI dependency returning a manager bound to the shared Redis client"""
    return SessionManager(redis_client)
