"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api.handlers import register_exception_handlers
from backend.app.api.routes.chat import router as chat_router
from backend.app.api.routes.checkout import router as checkout_router
from backend.app.api.routes.generate import router as generate_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.config import Settings, get_settings
from backend.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from backend.app.middleware.security import security_headers_middleware
from backend.app.ratelimit import create_rate_limiter
from backend.app.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Share one upstream HTTP client across requests."""
    # Per-attempt deadlines are enforced by the invoker
    app.state.http_client = httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0))
    try:
        yield
    finally:
        await app.state.http_client.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use (defaults to get_settings())
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Itinerary Gateway", version=settings.version, lifespan=lifespan)
    app.state.settings = settings

    limiter = create_rate_limiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        redis_url=settings.redis_url,
    )
    rate_limit = RateLimitMiddleware(
        limiter,
        create_default_bucket_map(),
        exempt_addresses=frozenset(settings.rate_limit_exempt_addresses),
    )

    # Last added runs first: CORS wraps rate limiting so 429s carry CORS headers
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(rate_limit)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )

    register_exception_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(generate_router)
    app.include_router(chat_router)
    app.include_router(checkout_router)

    if settings.api_key() is None:
        logger.warning("GEMINI_API_KEY is not set; generation endpoints will answer 500")
    logger.info(f"Itinerary Gateway {settings.version} starting ({settings.environment})")

    return app


app = create_app()
