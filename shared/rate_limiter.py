"""
Redis-based rate limiting for user actions
"""

import logging
import time
import uuid
from typing import Dict, Optional

import redis.asyncio as redis
from fastapi import Depends

from .exceptions import AgriSmartError
from .redis_client import get_redis

logger = logging.getLogger(__name__)


class RateLimitExceededError(AgriSmartError):
    status_code = 429
    default_detail = "Too many requests"


class RateLimiter:
    """Redis-based rate limiter using a sliding window"""

    def __init__(self, redis_client: Optional[redis.Redis]):
        self.redis_client = redis_client

    async def is_allowed(
        self,
        key: str,
        limit: int,
        window_seconds: int = 3600
    ) -> bool:
        """
        Check if request is allowed under rate limit and record it

        Args:
            key: Unique identifier for the rate limit (e.g. user id and action)
            limit: Maximum number of requests allowed in the window
            window_seconds: Time window in seconds (default: 1 hour)

        Returns:
            True if request is allowed, False if rate limited
        """
        if not self.redis_client:
            logger.warning("Redis client not initialized, allowing request")
            return True

        try:
            now = time.time()
            window_start = now - window_seconds

            pipe = self.redis_client.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            # Unique member so bursts within the same timestamp are all counted
            pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(key, window_seconds + 60)

            results = await pipe.execute()
            current_count = results[1]

            return current_count < limit

        except Exception as e:
            logger.error(f"Rate limiter error: {str(e)}")
            # Fail open - allow request if rate limiter fails
            return True

    async def get_remaining(
        self,
        key: str,
        limit: int,
        window_seconds: int = 3600
    ) -> int:
        """Get remaining requests in current window"""
        if not self.redis_client:
            return limit

        try:
            pipe = self.redis_client.pipeline()
            pipe.zremrangebyscore(key, 0, time.time() - window_seconds)
            pipe.zcard(key)
            results = await pipe.execute()

            return max(0, limit - results[1])

        except Exception as e:
            logger.error(f"Rate limiter error: {str(e)}")
            return limit

    async def reset(self, key: str):
        if self.redis_client:
            try:
                await self.redis_client.delete(key)
            except Exception as e:
                logger.error(f"Error resetting rate limit: {str(e)}")


class ActionRateLimiter:
    """Per-user and global hourly limits for AgriSmart actions"""

    # Requests per user per hour; global limits are 10x
    DEFAULT_LIMITS: Dict[str, int] = {
        "ai_moderation": 300,
        "appeal_submit": 10,
        "queue_submit": 200,
        "review_report": 30,
        "session_create": 20,
    }

    def __init__(self, redis_client: Optional[redis.Redis], limits: Optional[Dict[str, int]] = None):
        self.rate_limiter = RateLimiter(redis_client)
        self.limits = dict(self.DEFAULT_LIMITS)
        if limits:
            self.limits.update(limits)

    def limit_for(self, action: str) -> int:
        return self.limits.get(action, 100)

    async def check_user_limit(self, user_id: str, action: str) -> bool:
        key = f"ratelimit:user:{user_id}:{action}"
        return await self.rate_limiter.is_allowed(key, self.limit_for(action))

    async def check_global_limit(self, action: str) -> bool:
        key = f"ratelimit:global:{action}"
        return await self.rate_limiter.is_allowed(key, self.limit_for(action) * 10)

    async def check(self, user_id: str, action: str) -> bool:
        user_allowed = await self.check_user_limit(user_id, action)
        global_allowed = await self.check_global_limit(action)
        return user_allowed and global_allowed


def get_rate_limiter(redis_client: redis.Redis = Depends(get_redis)) -> ActionRateLimiter:
    return ActionRateLimiter(redis_client)


async def enforce_rate_limit(limiter: ActionRateLimiter, subject: str, action: str) -> None:
    """Raise ``RateLimitExceededError`` when ``subject`` is over its limit for ``action``"""
    if not await limiter.check(subject, action):
        logger.warning("Rate limit exceeded", extra={"subject": subject, "action": action})
        raise RateLimitExceededError(f"Rate limit exceeded for {action}")
