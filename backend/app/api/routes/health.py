"""Health and status endpoints.

- /health: liveness, always 200
- /api/status: which integrations are configured
- /healthz: component checks (Redis, optional upstream check), 503 when degraded
"""

from datetime import datetime, timezone
from typing import Annotated, Any

import httpx
import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.app.api.deps import get_http_client
from backend.app.config import Settings, get_settings
from backend.app.llm.client import GeminiClient

router = APIRouter()


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """Check Redis connectivity.

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    try:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        client.ping()
        return (True, "ok")
    except redis.RedisError as e:
        return (False, f"error: {type(e).__name__}")


async def check_upstream(settings: Settings, http_client: httpx.AsyncClient) -> tuple[bool, str]:
    """Check the generative-language API answers a model listing.

    Returns:
        (is_ok, status_message)
    """
    if not settings.enable_upstream_healthcheck:
        return (True, "disabled")

    api_key = settings.api_key()
    if api_key is None:
        return (False, "missing_api_key")

    try:
        client = GeminiClient(api_key, base_url=settings.gemini_base_url, client=http_client)
        models = await client.list_models()
        return (True, f"ok ({len(models)} models)")
    except (httpx.HTTPError, ValueError) as e:
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health(settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@router.get("/api/status")
async def api_status(settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, Any]:
    """Report configured integrations without revealing their values."""
    return {
        "status": "ready",
        "services": {
            "gemini": "configured" if settings.api_key() else "missing_api_key",
            "travelpayouts": "configured" if settings.travelpayouts_id else "missing_id",
            "checkout": "configured" if settings.stripe_pro_payment_link else "missing_link",
        },
        "security": {
            "rateLimit": "enabled",
            "rateLimitBackend": "redis" if settings.redis_url else "memory",
            "cors": "configured",
            "securityHeaders": "enabled",
        },
    }


@router.get("/healthz", response_model=None)
async def healthz(
    settings: Annotated[Settings, Depends(get_settings)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> dict[str, Any] | JSONResponse:
    """Health check endpoint.

    Checks:
    - Redis connectivity (when configured)
    - Upstream reachability (when enabled)

    Returns:
        200 with component status if all checks pass
        503 if any check fails
    """
    redis_ok, redis_status = await check_redis(settings)
    upstream_ok, upstream_status = await check_upstream(settings, http_client)

    all_ok = redis_ok and upstream_ok

    response_body = {
        "status": "ok" if all_ok else "degraded",
        "components": {
            "redis": redis_status,
            "upstream": upstream_status,
        },
    }

    if not all_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
