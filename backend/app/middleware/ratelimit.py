"""Rate limiting middleware."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from backend.app.errors import ErrorKind, GatewayError
from backend.app.ratelimit import RateLimiter, make_rate_limit_key

logger = logging.getLogger(__name__)


class RateLimitMiddleware:
    """Middleware for rate limiting HTTP requests.

    Maps request paths to buckets and enforces rate limits per client address.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        bucket_map: dict[str, str],
        exempt_addresses: frozenset[str] = frozenset(),
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path prefixes to bucket names
            exempt_addresses: Client addresses never limited
        """
        self._limiter = limiter
        self._bucket_map = bucket_map
        self._exempt = exempt_addresses

    def check_rate_limit(
        self, path: str, client_address: str, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            client_address: Remote address of the caller
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now()

        bucket = self._get_bucket(path)

        if bucket is None or client_address in self._exempt:
            return (True, 0)

        key = make_rate_limit_key(client_address, bucket)
        retry_after = self._limiter.check_quota(key, now)

        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    async def __call__(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """HTTP middleware entry point (``app.middleware("http")``)."""
        client_address = request.client.host if request.client else "unknown"
        allowed, retry_after = self.check_rate_limit(request.url.path, client_address)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_address} on {request.url.path}")
            error = GatewayError(ErrorKind.RATE_LIMITED, retry_after=retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={"error": error.message, "code": error.kind.value, "retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)

    def _get_bucket(self, path: str) -> str | None:
        for prefix, bucket in self._bucket_map.items():
            if path.startswith(prefix):
                return bucket

        return None


def create_default_bucket_map() -> dict[str, str]:
    """Create default bucket mapping.

    Returns:
        Dictionary mapping path prefixes to bucket names
    """
    return {
        "/api/": "api",
    }
