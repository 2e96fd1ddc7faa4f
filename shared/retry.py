"""
Retry and circuit breaker utilities for calls to external AI services
"""

import asyncio
import logging
import random
import time
from functools import wraps
from typing import Callable, Any, Optional, Type, Tuple

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """Base class for errors that should trigger retries"""
    pass


class APIError(RetryableError):
    """Upstream API returned a server error"""
    pass


class NetworkError(RetryableError):
    """Connection failed or timed out"""
    pass


class RateLimitError(RetryableError):
    """Upstream throttled us; retried with a longer backoff"""
    pass


class CircuitOpenError(Exception):
    """Raised without calling the wrapped function while the breaker is open"""
    pass


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    min_rate_limit_delay: float = 30.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (APIError, NetworkError, RateLimitError)
):
    """
    Decorator for exponential backoff retry logic on coroutine functions

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation
        jitter: Whether to add random jitter to prevent thundering herd
        min_rate_limit_delay: Lower bound on the delay after a RateLimitError
        retryable_exceptions: Tuple of exception types that should trigger retries
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt == max_retries:
                        logger.error(f"Function {func.__name__} failed after {max_retries} retries: {str(e)}")
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    if jitter:
                        delay = delay * (0.5 + random.random() * 0.5)
                    if isinstance(e, RateLimitError):
                        delay = max(delay, min_rate_limit_delay)

                    logger.warning(
                        f"Function {func.__name__} failed on attempt {attempt + 1}/{max_retries + 1}: {str(e)}. "
                        f"Retrying in {delay:.2f} seconds..."
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


class CircuitBreaker:
    """
    Stop calling a failing dependency for ``recovery_timeout`` seconds after
    ``failure_threshold`` consecutive failures.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: Type[Exception] = Exception
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    def __call__(self, func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            if self.state == "OPEN":
                if self._should_attempt_reset():
                    self.state = "HALF_OPEN"
                    logger.info(f"Circuit breaker for {func.__name__} is now HALF_OPEN")
                else:
                    raise CircuitOpenError(f"Circuit breaker is OPEN for {func.__name__}")

            try:
                result = await func(*args, **kwargs)
            except self.expected_exception:
                self._on_failure()
                raise
            self._on_success()
            return result

        return wrapper

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return time.monotonic() - self.last_failure_time >= self.recovery_timeout

    def _on_success(self):
        self.failure_count = 0
        if self.state == "HALF_OPEN":
            self.state = "CLOSED"
            logger.info("Circuit breaker is now CLOSED")

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
            self.state = "OPEN"
            logger.warning(f"Circuit breaker is now OPEN after {self.failure_count} failures")


def retry_api_call(
    max_retries: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
    min_rate_limit_delay: float = 30.0
):
    """Retry decorator specifically for API calls"""
    return exponential_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        min_rate_limit_delay=min_rate_limit_delay,
        retryable_exceptions=(APIError, NetworkError, RateLimitError)
    )


def convert_http_error(response_status: int, error_message: str) -> Exception:
    """Convert HTTP status codes to appropriate exception types"""
    if response_status == 429:
        return RateLimitError(f"Rate limit exceeded: {error_message}")
    elif response_status in (408, 502, 503, 504):
        return NetworkError(f"Network error ({response_status}): {error_message}")
    elif 500 <= response_status < 600:
        return APIError(f"Server error ({response_status}): {error_message}")
    else:
        return Exception(f"HTTP error ({response_status}): {error_message}")
