"""Shared asyncio Redis client"""
import logging
from typing import Optional

import redis.asyncio as redis

from .config import get_config

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get the process-wide Redis client (also usable as a FastAPI dependency)"""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(get_config().redis_url, decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


async def check_redis_health() -> dict:
    try:
        await get_redis().ping()
        return {"status": "healthy", "message": "Redis connection successful"}
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "message": f"Redis connection failed: {str(e)}"}
