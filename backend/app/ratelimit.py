"""Rate limiting utilities - fixed window per client address."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import redis


@dataclass(frozen=True)
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...


def make_rate_limit_key(client_address: str, bucket: str) -> str:
    """Create rate limit key from client address and bucket.

    Args:
        client_address: Remote address of the caller
        bucket: Bucket name (e.g., "api")

    Returns:
        Rate limit key
    """
    return f"{bucket}:{client_address}"


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        window = self._windows.get(key)
        window_length = timedelta(seconds=self._window_seconds)

        if window is None or now >= window[0] + window_length:
            self._windows[key] = (now, 1)
            return None

        window_start, count = window
        if count >= self._max_requests:
            seconds_remaining = int((window_start + window_length - now).total_seconds())
            return RetryAfter(seconds=max(1, seconds_remaining))

        self._windows[key] = (window_start, count + 1)
        return None


class RedisRateLimiter:
    """Redis-based rate limiter using INCR + EXPIRE pattern.

    Shares the window across gateway processes.
    """

    def __init__(self, redis_client: redis.Redis, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Redis client
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available, counting this request."""
        window_start = int(now.timestamp() / self._window_seconds) * self._window_seconds
        redis_key = f"ratelimit:{key}:{window_start}"

        count = self._redis.incr(redis_key)
        if count == 1:
            self._redis.expire(redis_key, self._window_seconds)

        if count > self._max_requests:
            ttl = self._redis.ttl(redis_key)
            return RetryAfter(seconds=max(1, ttl))

        return None


def create_rate_limiter(
    max_requests: int, window_seconds: int, redis_url: str | None = None
) -> RateLimiter:
    """Redis-backed limiter when a URL is configured, in-memory otherwise."""
    if redis_url:
        client = redis.from_url(redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        return RedisRateLimiter(client, max_requests=max_requests, window_seconds=window_seconds)
    return InMemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)
