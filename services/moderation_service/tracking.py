"""Redis counters and recent-decision log for AI moderation checks"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from shared.config import Settings, get_config

from .providers import MODERATION_CATEGORIES

logger = logging.getLogger(__name__)

DECISION_PREFIX = "moderation:decision:"
STATS_PREFIX = "moderation:stats:"
RECENT_KEY = "moderation:recent"


class ModerationTracker:
    """Records AI moderation decisions; failures are logged, never raised"""

    def __init__(self, redis_client: Optional[redis.Redis], settings: Optional[Settings] = None):
        self.redis = redis_client
        self.settings = settings or get_config()

    async def track_decision(
        self,
        decision_id: str,
        content: str,
        is_flagged: bool,
        flagged_categories: List[str],
        content_type: str,
        confidence: float,
        user_id: Optional[str] = None
    ) -> None:
        if self.redis is None:
            logger.warning("Redis not available for tracking moderation decision")
            return

        timestamp = datetime.now(timezone.utc).isoformat()
        record = {
            "id": decision_id,
            "timestamp": timestamp,
            "content": content,
            "is_flagged": is_flagged,
            "flagged_categories": flagged_categories,
            "content_type": content_type,
            "user_id": user_id,
            "confidence": confidence,
        }
        summary = {
            "id": decision_id,
            "timestamp": timestamp,
            "flagged": is_flagged,
            "categories": flagged_categories,
            "content_type": content_type,
        }

        try:
            pipe = self.redis.pipeline()
            pipe.set(f"{DECISION_PREFIX}{decision_id}", json.dumps(record), ex=self.settings.moderation_decision_ttl)
            pipe.incr(f"{STATS_PREFIX}total")
            if is_flagged:
                pipe.incr(f"{STATS_PREFIX}flagged")
                for category in flagged_categories:
                    pipe.incr(f"{STATS_PREFIX}category:{category}")
            pipe.incr(f"{STATS_PREFIX}type:{content_type}")
            pipe.lpush(RECENT_KEY, json.dumps(summary))
            pipe.ltrim(RECENT_KEY, 0, self.settings.moderation_recent_limit - 1)
            await pipe.execute()
            logger.info("Tracked moderation decision", extra={"decision_id": decision_id, "flagged": is_flagged})
        except redis.RedisError as e:
            logger.error(f"Error tracking moderation decision {decision_id}: {e}")

    async def get_decision(self, decision_id: str) -> Optional[Dict[str, Any]]:
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(f"{DECISION_PREFIX}{decision_id}")
        except redis.RedisError as e:
            logger.error(f"Error reading moderation decision {decision_id}: {e}")
            return None
        return json.loads(raw) if raw else None

    async def get_stats(self) -> Optional[Dict[str, int]]:
        if self.redis is None:
            return None
        keys = ["total", "flagged"] + [f"category:{category}" for category in MODERATION_CATEGORIES]
        try:
            values = await self.redis.mget([f"{STATS_PREFIX}{key}" for key in keys])
        except redis.RedisError as e:
            logger.error(f"Error getting moderation stats: {e}")
            return None
        return {key: int(value or 0) for key, value in zip(keys, values)}

    async def get_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        if self.redis is None:
            return []
        try:
            entries = await self.redis.lrange(RECENT_KEY, 0, limit - 1)
        except redis.RedisError as e:
            logger.error(f"Error reading recent moderation decisions: {e}")
            return []
        return [json.loads(entry) for entry in entries]
