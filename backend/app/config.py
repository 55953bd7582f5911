"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from backend.app.llm.client import GenerationConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"
    version: str = "2.0.0"

    # Upstream generative-language API
    gemini_api_key: SecretStr | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Model candidates, highest priority first
    itinerary_models: list[str] = [
        "models/gemini-2.0-flash",
        "models/gemini-2.5-flash",
        "models/gemini-flash-latest",
        "models/gemini-2.5-pro",
    ]
    streaming_models: list[str] = [
        "models/gemini-2.5-flash",
        "models/gemini-2.0-flash",
        "models/gemini-flash-latest",
    ]
    chat_models: list[str] = [
        "gemini-2.0-flash-exp",
        "gemini-exp-1206",
        "models/gemini-flash-latest",
    ]

    # Per-attempt timeouts (seconds)
    generation_timeout_seconds: float = 120.0
    streaming_timeout_seconds: float = 120.0
    chat_timeout_seconds: float = 60.0

    # Generation profiles
    itinerary_generation: GenerationConfig = GenerationConfig(
        temperature=0.5,
        top_k=30,
        top_p=0.85,
        max_output_tokens=32768,
        candidate_count=1,
        response_mime_type="application/json",
    )
    chat_generation: GenerationConfig = GenerationConfig(
        temperature=0.7,
        top_k=40,
        top_p=0.95,
        max_output_tokens=8192,
        candidate_count=1,
    )

    # Affiliate id embedded in booking links
    travelpayouts_id: str = "669212"

    # CORS
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5500",
        "http://127.0.0.1:5500",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Rate limiting (per client address, /api/ paths)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    redis_url: str | None = None
    rate_limit_exempt_addresses: list[str] = ["127.0.0.1"]

    # Retry-after hint returned when the upstream rate-limits us (seconds)
    upstream_retry_after_seconds: int = 30

    # Checkout
    stripe_pro_payment_link: str = ""

    # Health
    enable_upstream_healthcheck: bool = False

    @property
    def is_development(self) -> bool:
        """True when running in a development environment."""
        return self.environment == "development"

    def api_key(self) -> str | None:
        """Return the raw upstream API key, or None when unset."""
        if self.gemini_api_key is None:
            return None
        value = self.gemini_api_key.get_secret_value()
        return value or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
