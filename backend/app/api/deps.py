"""FastAPI dependencies wiring settings into the upstream client and pipeline.

Tests override ``get_generative_client`` (or ``get_pipeline``) through
``app.dependency_overrides`` to run against an ``httpx.MockTransport``.
"""

import logging
from typing import Annotated

import httpx
from fastapi import Depends, Request

from backend.app.config import Settings, get_settings
from backend.app.llm.client import GeminiClient, GenerativeClient
from backend.app.llm.invoker import ModelInvoker
from backend.app.pipeline.generation import GenerationPipeline
from backend.app.utils.logging import StructuredAttemptLogger
from backend.app.utils.metrics import PrometheusInvocationMetrics

logger = logging.getLogger(__name__)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared httpx client created and closed by the application lifespan.

    Raises:
        RuntimeError: If the lifespan has not run (e.g. TestClient used
            without a context manager)
    """
    client: httpx.AsyncClient | None = getattr(request.app.state, "http_client", None)
    if client is None:
        raise RuntimeError("HTTP client not initialized; application lifespan has not started")
    return client


def get_generative_client(
    settings: Annotated[Settings, Depends(get_settings)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> GenerativeClient | None:
    """Gemini client, or None when no API key is configured."""
    api_key = settings.api_key()
    if api_key is None:
        logger.error("GEMINI_API_KEY is not configured")
        return None
    return GeminiClient(api_key, base_url=settings.gemini_base_url, client=http_client)


def get_model_invoker(
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[GenerativeClient | None, Depends(get_generative_client)],
) -> ModelInvoker | None:
    """Invoker with Prometheus metrics and structured attempt logging."""
    if client is None:
        return None
    return ModelInvoker(
        client,
        metrics=PrometheusInvocationMetrics(),
        logger=StructuredAttemptLogger(),
        retry_after_seconds=settings.upstream_retry_after_seconds,
    )


def get_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    invoker: Annotated[ModelInvoker | None, Depends(get_model_invoker)],
) -> GenerationPipeline:
    """Per-request generation pipeline."""
    return GenerationPipeline(invoker, settings)
