"""Shared pytest fixtures for all test suites."""

from collections.abc import Iterator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.app.api.deps import get_http_client
from backend.app.config import Settings, get_settings
from backend.app.main import create_app
from tests.helpers import UpstreamStub


@pytest.fixture
def upstream() -> UpstreamStub:
    """Fresh scripted upstream."""
    return UpstreamStub()


@pytest.fixture
def mock_http_client(upstream: UpstreamStub) -> httpx.AsyncClient:
    """httpx client routed to the scripted upstream."""
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def settings() -> Settings:
    """Settings with short candidate lists and no .env influence."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        environment="test",
        gemini_api_key="test-key",
        gemini_base_url="https://gemini.test/v1beta",
        itinerary_models=["models/model-a", "models/model-b", "models/model-c"],
        streaming_models=["models/stream-a", "models/stream-b"],
        chat_models=["chat-a", "models/chat-b"],
        generation_timeout_seconds=2.0,
        streaming_timeout_seconds=2.0,
        chat_timeout_seconds=2.0,
        rate_limit_max_requests=1000,
        redis_url=None,
        stripe_pro_payment_link="https://buy.stripe.com/pro-link",
    )


@pytest.fixture
def app(settings: Settings, mock_http_client: httpx.AsyncClient) -> FastAPI:
    """Application wired to the test settings and scripted upstream."""
    application = create_app(settings)
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_http_client] = lambda: mock_http_client
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client running the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client
