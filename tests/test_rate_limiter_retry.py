"""Tests for rate limiting and the retry / circuit breaker helpers"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.rate_limiter import ActionRateLimiter, RateLimiter, RateLimitExceededError, enforce_rate_limit
from shared.retry import (
    APIError, CircuitBreaker, CircuitOpenError, NetworkError, RateLimitError,
    convert_http_error, exponential_backoff,
)


class TestRateLimiter:

    async def test_allows_up_to_limit(self, fake_redis):
        limiter = RateLimiter(fake_redis)

        results = [await limiter.is_allowed("key", limit=3) for _ in range(4)]

        assert results == [True, True, True, False]
        assert await limiter.get_remaining("key", limit=3) == 0

    async def test_reset(self, fake_redis):
        limiter = RateLimiter(fake_redis)
        await limiter.is_allowed("key", limit=1)

        await limiter.reset("key")

        assert await limiter.is_allowed("key", limit=1) is True

    async def test_without_redis_allows(self):
        limiter = RateLimiter(None)
        assert await limiter.is_allowed("key", limit=0) is True
        assert await limiter.get_remaining("key", limit=5) == 5

    async def test_fails_open_on_redis_errors(self):
        broken = MagicMock()
        broken.pipeline.return_value.execute = AsyncMock(side_effect=ConnectionError("down"))
        limiter = RateLimiter(broken)

        assert await limiter.is_allowed("key", limit=1) is True


class TestActionRateLimiter:

    async def test_per_user_limit(self, fake_redis):
        limiter = ActionRateLimiter(fake_redis, limits={"review_report": 2})

        assert await limiter.check("user-1", "review_report")
        assert await limiter.check("user-1", "review_report")
        assert not await limiter.check("user-1", "review_report")
        # Other users have their own budget
        assert await limiter.check("user-2", "review_report")

    async def test_unknown_action_uses_default(self, fake_redis):
        assert ActionRateLimiter(fake_redis).limit_for("something_else") == 100

    async def test_enforce_raises(self, fake_redis):
        limiter = ActionRateLimiter(fake_redis, limits={"queue_submit": 1})
        await enforce_rate_limit(limiter, "user-1", "queue_submit")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await enforce_rate_limit(limiter, "user-1", "queue_submit")
        assert exc_info.value.status_code == 429


class TestRetry:

    async def test_retries_retryable_errors(self):
        func = AsyncMock(side_effect=[NetworkError("timeout"), APIError("500"), "ok"])
        func.__name__ = "call"
        wrapped = exponential_backoff(max_retries=3, base_delay=0.001, jitter=False)(func)

        assert await wrapped() == "ok"
        assert func.await_count == 3

    async def test_gives_up_after_max_retries(self):
        func = AsyncMock(side_effect=NetworkError("timeout"))
        func.__name__ = "call"
        wrapped = exponential_backoff(max_retries=2, base_delay=0.001, jitter=False)(func)

        with pytest.raises(NetworkError):
            await wrapped()
        assert func.await_count == 3

    async def test_other_errors_are_not_retried(self):
        func = AsyncMock(side_effect=ValueError("bad input"))
        func.__name__ = "call"
        wrapped = exponential_backoff(max_retries=3, base_delay=0.001)(func)

        with pytest.raises(ValueError):
            await wrapped()
        assert func.await_count == 1

    @pytest.mark.parametrize("status, expected", [
        (429, RateLimitError),
        (503, NetworkError),
        (500, APIError),
    ])
    def test_convert_http_error(self, status, expected):
        assert isinstance(convert_http_error(status, "boom"), expected)

    def test_client_errors_are_not_retryable(self):
        error = convert_http_error(400, "bad request")
        assert not isinstance(error, (APIError, NetworkError, RateLimitError))


class TestCircuitBreaker:

    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, expected_exception=NetworkError)
        func = AsyncMock(side_effect=NetworkError("down"))
        func.__name__ = "call"
        wrapped = breaker(func)

        for _ in range(2):
            with pytest.raises(NetworkError):
                await wrapped()

        with pytest.raises(CircuitOpenError):
            await wrapped()
        assert func.await_count == 2
        assert breaker.state == "OPEN"

    async def test_half_open_recovers(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0, expected_exception=NetworkError)
        func = AsyncMock(side_effect=[NetworkError("down"), "ok"])
        func.__name__ = "call"
        wrapped = breaker(func)

        with pytest.raises(NetworkError):
            await wrapped()
        assert breaker.state == "OPEN"

        assert await wrapped() == "ok"
        assert breaker.state == "CLOSED"
