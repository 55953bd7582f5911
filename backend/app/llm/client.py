"""Client for the Gemini generative-language REST API.

Security: the API key is injected by the caller (read from settings) and sent
as a header, never in the query string or in logs.

The client issues exactly one HTTP request per call. Timeouts, failover and
status classification belong to the invoker.
"""

import json
import logging
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GenerationConfig(BaseModel):
    """Sampling configuration sent with every generation request."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    temperature: float = Field(0.7, ge=0.0, le=2.0)
    top_k: int = Field(40, alias="topK", gt=0)
    top_p: float = Field(0.95, alias="topP", gt=0.0, le=1.0)
    max_output_tokens: int = Field(8192, alias="maxOutputTokens", gt=0)
    candidate_count: int = Field(1, alias="candidateCount", ge=1)
    # A hint only - the model does not always honour it
    response_mime_type: str | None = Field(None, alias="responseMimeType")

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the upstream camelCase shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FinishReason(str, Enum):
    """Why the upstream stopped generating."""

    STOP = "STOP"
    SAFETY = "SAFETY"
    MAX_TOKENS = "MAX_TOKENS"
    RECITATION = "RECITATION"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: object) -> "FinishReason":
        """Map an upstream value to a member, UNKNOWN when unrecognised."""
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                return cls.UNKNOWN
        return cls.UNKNOWN


class ModelResponse(BaseModel):
    """Raw upstream reply, shape of ``text`` still unknown."""

    model: str
    text: str = ""
    finish_reason: FinishReason = FinishReason.UNKNOWN
    safety_ratings: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, model: str, payload: Any) -> "ModelResponse":
        """Build from a generateContent response body.

        Only the first candidate is read. A prompt blocked before any
        candidate was produced is reported as a SAFETY finish.
        """
        if not isinstance(payload, dict):
            return cls(model=model)

        candidates = payload.get("candidates") or []
        if not candidates:
            feedback = payload.get("promptFeedback") or {}
            blocked = bool(feedback.get("blockReason"))
            return cls(
                model=model,
                finish_reason=FinishReason.SAFETY if blocked else FinishReason.UNKNOWN,
                safety_ratings=list(feedback.get("safetyRatings") or []),
            )

        first = candidates[0] if isinstance(candidates[0], dict) else {}
        return cls(
            model=model,
            text=_candidate_text(first),
            finish_reason=FinishReason.parse(first.get("finishReason")),
            safety_ratings=list(first.get("safetyRatings") or []),
        )


def _candidate_text(candidate: dict[str, Any]) -> str:
    content = candidate.get("content") or {}
    parts = content.get("parts") or []
    return "".join(
        part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


class UpstreamStatusError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"upstream returned {status_code}")


class UpstreamPayloadError(Exception):
    """Upstream answered 2xx with a body that is not JSON."""

    pass


class GenerativeClient(Protocol):
    """Protocol for upstream client implementations."""

    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> ModelResponse:
        """Issue one non-streaming generation request.

        Raises:
            UpstreamStatusError: On non-2xx status
            UpstreamPayloadError: On an undecodable 2xx body
            httpx.HTTPError: On transport failures
        """
        ...

    async def open_stream(
        self, model: str, prompt: str, config: GenerationConfig
    ) -> httpx.Response:
        """Open one streaming generation request (caller closes the response)."""
        ...


def model_url(base_url: str, model: str, method: str) -> str:
    """Build the endpoint URL for a model, with or without the ``models/`` prefix."""
    name = model if model.startswith("models/") else f"models/{model}"
    return f"{base_url.rstrip('/')}/{name}:{method}"


def build_request_body(prompt: str, config: GenerationConfig) -> dict[str, Any]:
    """Request body for generateContent / streamGenerateContent."""
    return {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": config.to_payload(),
    }


class GeminiClient:
    """httpx-backed Gemini REST client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client.

        Args:
            api_key: Gemini API key
            base_url: REST base URL (``.../v1beta``)
            client: Optional httpx client (for testing with mocks)
        """
        self._api_key = api_key
        self._base_url = base_url
        # Per-attempt deadlines are enforced by the invoker
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0))

    @property
    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> ModelResponse:
        """Issue one generateContent request."""
        response = await self._client.post(
            model_url(self._base_url, model, "generateContent"),
            headers=self._headers,
            json=build_request_body(prompt, config),
        )
        if not response.is_success:
            raise UpstreamStatusError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamPayloadError(f"non-JSON body from {model}") from e

        return ModelResponse.from_payload(model, payload)

    async def open_stream(
        self, model: str, prompt: str, config: GenerationConfig
    ) -> httpx.Response:
        """Open a streamGenerateContent request in server-sent-events mode.

        Returns:
            The open response; the caller must ``aclose()`` it

        Raises:
            UpstreamStatusError: On non-2xx status (response already closed)
        """
        request = self._client.build_request(
            "POST",
            model_url(self._base_url, model, "streamGenerateContent"),
            params={"alt": "sse"},
            headers=self._headers,
            json=build_request_body(prompt, config),
        )
        response = await self._client.send(request, stream=True)
        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise UpstreamStatusError(response.status_code, body)
        return response

    async def list_models(self) -> list[str]:
        """List model names visible to this key (used by the health check)."""
        response = await self._client.get(f"{self._base_url.rstrip('/')}/models", headers=self._headers)
        response.raise_for_status()
        data = response.json()
        return [m["name"] for m in data.get("models", []) if isinstance(m, dict) and "name" in m]

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def parse_stream_line(line: str) -> str | None:
    """Extract the text fragment carried by one stream line.

    Accepts SSE (``data: {...}``) and newline-delimited JSON framing, including
    the ``[``/``,``/``]`` separators of a streamed JSON array.

    Returns:
        The fragment, or None for blank, terminal or malformed lines
    """
    line = line.strip()
    if not line or line.startswith("data: [DONE]"):
        return None
    if line.startswith("data:"):
        line = line[5:].strip()
    line = line.lstrip("[,").rstrip("],").strip()
    if not line:
        return None

    try:
        chunk = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed stream chunk: {line[:50]}")
        return None

    fragment = ModelResponse.from_payload("stream", chunk).text
    return fragment or None


async def iter_stream_fragments(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Decode newline-delimited upstream chunks into text fragments."""
    async for line in lines:
        fragment = parse_stream_line(line)
        if fragment is not None:
            yield fragment
