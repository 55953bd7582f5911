"""Generation pipeline - sanitize, extract, prompt, invoke, resolve.

One GenerationPipeline serves every endpoint. Each method runs the full chain
for a single request and either returns a result or raises a GatewayError.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, NoReturn

from backend.app.config import Settings
from backend.app.errors import ErrorKind, GatewayError, InvalidInputError
from backend.app.llm.invoker import ModelInvoker, StreamSession
from backend.app.models.itinerary import ResolvedItinerary
from backend.app.models.metadata import RequestMetadata
from backend.app.models.requests import ChatMessage
from backend.app.pipeline.metadata import extract_metadata
from backend.app.pipeline.resolver import (
    ResolutionFailed,
    ResolutionOutcome,
    Resolved,
    resolve_itinerary,
    resolve_text,
)
from backend.app.pipeline.sanitize import sanitize
from backend.app.prompts.chat import build_chat_prompt
from backend.app.prompts.itinerary import build_itinerary_prompt
from backend.app.utils.logging import preview
from backend.app.utils.metrics import record_resolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedRequest:
    """Sanitized input with its metadata and final prompt."""

    text: str
    metadata: RequestMetadata
    prompt: str


@dataclass(frozen=True)
class TextResult:
    text: str
    model: str
    metadata: RequestMetadata
    processing_time_ms: int
    truncated: bool = False


@dataclass(frozen=True)
class ItineraryResult:
    itinerary: ResolvedItinerary
    model: str
    processing_time_ms: int
    truncated: bool = False


@dataclass(frozen=True)
class ChatResult:
    text: str
    model: str
    processing_time_ms: int
    truncated: bool = False


class GenerationPipeline:
    """Runs requests through the generation chain."""

    def __init__(
        self,
        invoker: ModelInvoker | None,
        settings: Settings,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            invoker: Model invoker, None when no upstream API key is configured
            settings: Model candidates, timeouts, generation profiles
            clock: Injectable monotonic clock (default: time.monotonic)
        """
        self._invoker = invoker
        self._settings = settings
        self._clock = clock or time.monotonic

    def prepare_itinerary(self, raw: Any) -> PreparedRequest:
        """Sanitize raw input and assemble the itinerary prompt.

        Raises:
            InvalidInputError: If the input fails sanitization
        """
        text = sanitize(raw)
        metadata = extract_metadata(text)
        prompt = build_itinerary_prompt(
            text, metadata, affiliate_id=self._settings.travelpayouts_id
        )
        logger.info(
            f"Prepared itinerary request: {preview(text)!r}",
            extra={
                "structured": {
                    "word_count": metadata.word_count,
                    "has_specific_dates": metadata.has_specific_dates,
                    "is_multi_city": metadata.is_multi_city,
                }
            },
        )
        return PreparedRequest(text=text, metadata=metadata, prompt=prompt)

    async def generate_text(
        self, prepared: PreparedRequest, *, trace_id: str | None = None
    ) -> TextResult:
        """Generate an itinerary and return the cleaned text without parsing it."""
        started = self._clock()
        result = await self._require_invoker().invoke(
            prepared.prompt,
            self._settings.itinerary_models,
            self._settings.itinerary_generation,
            timeout_seconds=self._settings.generation_timeout_seconds,
            trace_id=trace_id,
        )
        resolved = self._unwrap("gemini", resolve_text(result.response), trace_id)
        return TextResult(
            text=resolved.text,
            model=result.response.model,
            metadata=prepared.metadata,
            processing_time_ms=self._elapsed_ms(started),
            truncated=resolved.truncated,
        )

    async def generate_itinerary(
        self, prepared: PreparedRequest, *, trace_id: str | None = None
    ) -> ItineraryResult:
        """Generate and resolve a structured itinerary.

        Raises:
            ResolutionError: If the reply cannot be resolved into an itinerary
        """
        started = self._clock()
        result = await self._require_invoker().invoke(
            prepared.prompt,
            self._settings.itinerary_models,
            self._settings.itinerary_generation,
            timeout_seconds=self._settings.generation_timeout_seconds,
            trace_id=trace_id,
        )
        outcome = resolve_itinerary(result.response)
        if isinstance(outcome, ResolutionFailed):
            self._fail("generate-itinerary", outcome, trace_id)

        if outcome.itinerary is None:
            # Truncated text that holds no complete object
            self._fail(
                "generate-itinerary",
                ResolutionFailed(
                    ErrorKind.MAX_TOKENS_EXCEEDED,
                    f"{result.response.model} truncated output did not contain a complete "
                    "itinerary",
                ),
                trace_id,
            )

        record_resolution("generate-itinerary", "truncated" if outcome.truncated else "ok")
        for warning in outcome.warnings:
            logger.warning(f"Itinerary schema warning: {warning}", extra={"trace_id": trace_id})

        return ItineraryResult(
            itinerary=outcome.itinerary,
            model=result.response.model,
            processing_time_ms=self._elapsed_ms(started),
            truncated=outcome.truncated,
        )

    async def open_stream(
        self, prepared: PreparedRequest, *, trace_id: str | None = None
    ) -> StreamSession:
        """Open the streaming chain; the caller drains and closes the session.

        Raises:
            AllModelsFailedError: No streaming candidate produced a fragment
        """
        return await self._require_invoker().open_stream(
            prepared.prompt,
            self._settings.streaming_models,
            self._settings.itinerary_generation,
            timeout_seconds=self._settings.streaming_timeout_seconds,
            trace_id=trace_id,
        )

    async def chat(
        self,
        messages: Sequence[ChatMessage] | None,
        history: Sequence[ChatMessage] = (),
        *,
        trace_id: str | None = None,
    ) -> ChatResult:
        """Answer the latest chat message in the context of earlier turns.

        Raises:
            InvalidInputError: No messages, or the latest one fails sanitization
        """
        if not messages:
            raise InvalidInputError("Missing messages array", kind=ErrorKind.MISSING_MESSAGES)

        started = self._clock()
        latest = sanitize(messages[-1].content)
        prompt = build_chat_prompt(
            latest,
            _sanitize_history(history),
            affiliate_id=self._settings.travelpayouts_id,
        )
        logger.info(f"Chat request: {preview(latest)!r} ({len(history)} prior turns)")

        result = await self._require_invoker().invoke(
            prompt,
            self._settings.chat_models,
            self._settings.chat_generation,
            timeout_seconds=self._settings.chat_timeout_seconds,
            trace_id=trace_id,
        )
        resolved = self._unwrap("chat", resolve_text(result.response), trace_id)
        return ChatResult(
            text=resolved.text,
            model=result.response.model,
            processing_time_ms=self._elapsed_ms(started),
            truncated=resolved.truncated,
        )

    def _require_invoker(self) -> ModelInvoker:
        if self._invoker is None:
            raise GatewayError(
                ErrorKind.SERVICE_UNAVAILABLE, detail="GEMINI_API_KEY is not configured"
            )
        return self._invoker

    def _unwrap(self, endpoint: str, outcome: ResolutionOutcome, trace_id: str | None) -> Resolved:
        if isinstance(outcome, ResolutionFailed):
            self._fail(endpoint, outcome, trace_id)

        record_resolution(endpoint, "truncated" if outcome.truncated else "ok")
        return outcome

    def _fail(self, endpoint: str, failure: ResolutionFailed, trace_id: str | None) -> NoReturn:
        record_resolution(endpoint, failure.kind.value)
        logger.warning(
            f"Resolution failed on {endpoint}: {failure.kind.value}",
            extra={"trace_id": trace_id, "structured": {"detail": failure.detail}},
        )
        raise failure.to_error()

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)


def _sanitize_history(history: Sequence[ChatMessage]) -> list[ChatMessage]:
    cleaned: list[ChatMessage] = []
    for message in history:
        try:
            content = sanitize(message.content)
        except InvalidInputError:
            logger.debug(f"Dropping unusable {message.role} turn from chat history")
            continue
        cleaned.append(ChatMessage(role=message.role, content=content))
    return cleaned
