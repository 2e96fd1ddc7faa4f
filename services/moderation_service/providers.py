"""
AI moderation providers

The service in front of the providers caches results in Redis, bounds
concurrent upstream calls and always answers: when no provider is configured
it returns an empty verdict, and when the provider fails it falls back to a
small list of sensitive terms.
"""

import asyncio
import hashlib
import logging
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import openai
import redis.asyncio as redis
from pydantic import BaseModel, Field

from shared.config import Settings, get_config
from shared.retry import CircuitBreaker, NetworkError, RetryableError, convert_http_error, retry_api_call

logger = logging.getLogger(__name__)

MODERATION_CATEGORIES = ["hate", "harassment", "self-harm", "sexual", "violent", "graphic"]

FALLBACK_TERMS = ["offensive", "racist", "sexist", "hate", "kill", "explicit"]
FALLBACK_CATEGORY_TERMS = {
    "hate": ("hate", "racist"),
    "harassment": ("offensive", "sexist"),
    "sexual": ("explicit",),
    "violent": ("kill",),
}
FALLBACK_SCORE = 0.8
FALLBACK_CONFIDENCE = 0.7

CACHE_PREFIX = "ai-moderation:"


class ProcessedModerationResult(BaseModel):
    is_flagged: bool
    categories: Dict[str, bool]
    category_scores: Dict[str, float]
    flagged_categories: List[str] = Field(default_factory=list)
    timestamp: datetime
    id: str
    confidence: float
    provider: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


def fallback_id() -> str:
    return f"fallback-{int(time.time() * 1000)}"


def unavailable_result() -> ProcessedModerationResult:
    """Non-flagged verdict used when no provider is configured"""
    return ProcessedModerationResult(
        is_flagged=False,
        categories={category: False for category in MODERATION_CATEGORIES},
        category_scores={category: 0.0 for category in MODERATION_CATEGORIES},
        flagged_categories=[],
        timestamp=_now(),
        id=fallback_id(),
        confidence=0.0,
        provider="none",
    )


def keyword_fallback_result(content: str) -> ProcessedModerationResult:
    """Verdict from sensitive terms, used when the provider call fails"""
    lower = content.lower()
    found = [term for term in FALLBACK_TERMS if term in lower]

    categories = {category: False for category in MODERATION_CATEGORIES}
    for category, terms in FALLBACK_CATEGORY_TERMS.items():
        categories[category] = any(term in lower for term in terms)
    scores = {category: FALLBACK_SCORE if hit else 0.0 for category, hit in categories.items()}

    return ProcessedModerationResult(
        is_flagged=bool(found),
        categories=categories,
        category_scores=scores,
        flagged_categories=["harassment"] if found else [],
        timestamp=_now(),
        id=fallback_id(),
        confidence=FALLBACK_CONFIDENCE if found else 0.0,
        provider="fallback",
    )


class BaseModerationProvider(ABC):
    """Base class for moderation providers"""

    name = "base"

    @abstractmethod
    async def moderate_text(self, text: str) -> ProcessedModerationResult:
        """Classify text, raising on upstream failure"""
        pass


class OpenAIModerationProvider(BaseModerationProvider):
    """OpenAI moderation provider using OpenAI's moderation API"""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[openai.AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_retries: int = 2
    ):
        self.client = client or openai.AsyncOpenAI(api_key=api_key)
        self.model = model
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, expected_exception=RetryableError)
        retry = retry_api_call(max_retries=max_retries, base_delay=0.5, max_delay=4.0, min_rate_limit_delay=5.0)
        self._create = breaker(retry(self._create_moderation))

    async def _create_moderation(self, text: str):
        kwargs = {"input": text}
        if self.model:
            kwargs["model"] = self.model
        try:
            return await self.client.moderations.create(**kwargs)
        except openai.APIStatusError as e:
            raise convert_http_error(e.status_code, e.message) from e
        except openai.APIConnectionError as e:
            raise NetworkError(str(e)) from e

    async def moderate_text(self, text: str) -> ProcessedModerationResult:
        response = await self._create(text)
        result = response.results[0]

        categories = {
            name: bool(value)
            for name, value in result.categories.model_dump(by_alias=True).items()
            if value is not None
        }
        scores = {
            name: float(value)
            for name, value in result.category_scores.model_dump(by_alias=True).items()
            if value is not None
        }

        return ProcessedModerationResult(
            is_flagged=bool(result.flagged),
            categories=categories,
            category_scores=scores,
            flagged_categories=[name for name, flagged in categories.items() if flagged],
            timestamp=_now(),
            id=response.id,
            confidence=max(scores.values()) if scores else 0.0,
            provider=self.name,
        )


class MockModerationProvider(BaseModerationProvider):
    """Keyword based provider for development and testing"""

    name = "mock"

    TERMS = {
        "hate": ("hate", "racist"),
        "harassment": ("harass", "idiot", "offensive"),
        "self-harm": ("self-harm", "suicide"),
        "sexual": ("explicit", "nsfw"),
        "violent": ("kill", "violence"),
        "graphic": ("gore",),
    }

    async def moderate_text(self, text: str) -> ProcessedModerationResult:
        lower = text.lower()
        categories = {
            category: any(term in lower for term in terms)
            for category, terms in self.TERMS.items()
        }
        scores = {category: 0.9 if hit else 0.0 for category, hit in categories.items()}
        flagged = [category for category, hit in categories.items() if hit]

        return ProcessedModerationResult(
            is_flagged=bool(flagged),
            categories=categories,
            category_scores=scores,
            flagged_categories=flagged,
            timestamp=_now(),
            id=f"mock-{uuid.uuid4().hex}",
            confidence=max(scores.values()),
            provider=self.name,
        )


def build_moderation_provider(settings: Optional[Settings] = None) -> Optional[BaseModerationProvider]:
    """Pick the configured provider; None when AI moderation is unavailable"""
    settings = settings or get_config()
    if not settings.ai_moderation_enabled:
        logger.info("AI moderation disabled by configuration")
        return None
    if settings.moderation_provider == "mock":
        logger.info("Initialized mock moderation provider")
        return MockModerationProvider()
    if settings.moderation_provider == "openai" and settings.openai_api_key:
        logger.info("Initialized OpenAI moderation provider")
        return OpenAIModerationProvider(api_key=settings.openai_api_key)
    logger.warning("No moderation provider configured; AI checks will not flag content")
    return None


class AIModerationService:
    """Cached, concurrency-bounded front for a moderation provider"""

    def __init__(
        self,
        provider: Optional[BaseModerationProvider],
        redis_client: Optional[redis.Redis] = None,
        cache_ttl: int = 3600,
        concurrency: int = 10
    ):
        self.provider = provider
        self.redis = redis_client
        self.cache_ttl = cache_ttl
        self._semaphore = asyncio.Semaphore(concurrency)

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider is not None else "internal"

    @staticmethod
    def cache_key(content: str, content_type: str) -> str:
        digest = hashlib.sha256(f"{content_type}:{content}".encode("utf-8")).hexdigest()
        return f"{CACHE_PREFIX}{digest}"

    async def moderate_content(self, content: str, content_type: str = "text") -> ProcessedModerationResult:
        if self.provider is None:
            logger.error("AI moderation provider not initialized")
            return unavailable_result()

        key = self.cache_key(content, content_type)
        cached = await self._get_cached(key)
        if cached is not None:
            return cached

        async with self._semaphore:
            try:
                result = await self.provider.moderate_text(content)
            except Exception as e:
                logger.error(
                    f"Error calling {self.provider.name} moderation API: {e}",
                    extra={"content_type": content_type}
                )
                return keyword_fallback_result(content)

        await self._set_cached(key, result)
        return result

    async def _get_cached(self, key: str) -> Optional[ProcessedModerationResult]:
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(key)
            return ProcessedModerationResult.model_validate_json(raw) if raw else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Ignoring moderation cache read failure: {e}")
            return None

    async def _set_cached(self, key: str, result: ProcessedModerationResult):
        if self.redis is None:
            return
        try:
            await self.redis.set(key, result.model_dump_json(), ex=self.cache_ttl)
        except redis.RedisError as e:
            logger.warning(f"Ignoring moderation cache write failure: {e}")
