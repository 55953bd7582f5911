"""Sequential model failover with per-attempt timeouts.

Implements the invocation strategy:
- Candidates tried strictly in priority order, one at a time
- Independent timeout per attempt; expiry cancels only that attempt
- 403 aborts the chain (AuthError); 429 aborts only on the final candidate
  (RateLimitedError); every other failure falls through to the next candidate
- Exhausted chain raises AllModelsFailedError with the attempt records
- Metrics and structured logging per attempt
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import httpx

from backend.app.errors import AllModelsFailedError, AuthError, RateLimitedError
from backend.app.llm.client import (
    GenerationConfig,
    GenerativeClient,
    ModelResponse,
    UpstreamPayloadError,
    UpstreamStatusError,
    iter_stream_fragments,
)

logger = logging.getLogger(__name__)


class EmptyStreamError(Exception):
    """Upstream stream closed before producing any text."""

    pass


class AttemptOutcome(str, Enum):
    """Terminal outcome of one candidate attempt."""

    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    RATE_LIMITED = "rate_limited"
    AUTH_ERROR = "auth_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    BAD_PAYLOAD = "bad_payload"
    EMPTY_STREAM = "empty_stream"


@dataclass(frozen=True)
class AttemptRecord:
    """What happened to one candidate."""

    model: str
    outcome: AttemptOutcome
    started_at: float
    finished_at: float
    status_code: int | None = None
    error: str | None = None

    @property
    def latency_ms(self) -> float:
        return (self.finished_at - self.started_at) * 1000


@dataclass
class InvocationResult:
    """Successful invocation plus the failures that preceded it."""

    response: ModelResponse
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def failures(self) -> list[AttemptRecord]:
        return [a for a in self.attempts if a.outcome != AttemptOutcome.SUCCESS]


# Metrics interface (implemented by utils.metrics)
class InvocationMetrics:
    """Interface for invocation metrics."""

    def record_attempt(self, model: str, outcome: str, latency_ms: float) -> None:
        """Record one attempt's latency and outcome."""
        pass


# Logging interface (implemented by utils.logging)
class AttemptLogger:
    """Interface for structured attempt logging."""

    def log_attempt(
        self,
        trace_id: str | None,
        model: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        status_code: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log one attempt."""
        pass


class StreamSession:
    """An open upstream stream whose first fragment has already arrived."""

    def __init__(
        self,
        model: str,
        response: httpx.Response,
        fragments: AsyncIterator[str],
        first_fragment: str,
        attempts: list[AttemptRecord],
    ) -> None:
        self.model = model
        self.attempts = attempts
        self.interrupted = False
        self._response = response
        self._fragments = fragments
        self._first_fragment = first_fragment

    async def fragments(self) -> AsyncIterator[str]:
        """Yield every text fragment, then release the upstream connection.

        A transport failure after the first fragment ends the stream early;
        fragments already yielded stay delivered.
        """
        try:
            yield self._first_fragment
            async for fragment in self._fragments:
                yield fragment
        except httpx.HTTPError as e:
            self.interrupted = True
            logger.warning(f"Stream from {self.model} interrupted: {type(e).__name__}")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release the upstream connection."""
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()
        await self._response.aclose()


class ModelInvoker:
    """Tries model candidates in order until one succeeds."""

    def __init__(
        self,
        client: GenerativeClient,
        metrics: InvocationMetrics | None = None,
        logger: AttemptLogger | None = None,
        *,
        retry_after_seconds: int = 30,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize invoker.

        Args:
            client: Upstream client issuing one request per call
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            retry_after_seconds: Hint attached to RateLimitedError
            clock: Injectable monotonic clock (default: time.monotonic)
        """
        self._client = client
        self._metrics = metrics or InvocationMetrics()
        self._logger = logger or AttemptLogger()
        self._retry_after = retry_after_seconds
        self._clock = clock or time.monotonic

    async def invoke(
        self,
        prompt: str,
        candidates: Sequence[str],
        config: GenerationConfig,
        *,
        timeout_seconds: float,
        trace_id: str | None = None,
    ) -> InvocationResult:
        """Run the failover chain for a non-streaming generation.

        Args:
            prompt: Final prompt text
            candidates: Model identifiers, highest priority first
            config: Generation configuration
            timeout_seconds: Deadline for each individual attempt
            trace_id: Correlation id for logs

        Returns:
            InvocationResult with the first successful response

        Raises:
            AuthError: Upstream answered 403
            RateLimitedError: Final candidate answered 429
            AllModelsFailedError: Every candidate failed
        """
        attempts: list[AttemptRecord] = []

        for index, model in enumerate(candidates):
            is_last = index == len(candidates) - 1
            started_at = self._clock()

            try:
                response = await asyncio.wait_for(
                    self._client.generate(model, prompt, config), timeout=timeout_seconds
                )

            except asyncio.TimeoutError:
                self._record(
                    attempts,
                    trace_id,
                    model,
                    AttemptOutcome.TIMEOUT,
                    started_at,
                    error=f"timed out after {timeout_seconds:g}s",
                )
                continue

            except UpstreamStatusError as e:
                if e.status_code == 403:
                    self._record(
                        attempts,
                        trace_id,
                        model,
                        AttemptOutcome.AUTH_ERROR,
                        started_at,
                        status_code=403,
                        error=e.body,
                    )
                    raise AuthError(detail=f"{model}: {e.body}") from e

                if e.status_code == 429:
                    self._record(
                        attempts,
                        trace_id,
                        model,
                        AttemptOutcome.RATE_LIMITED,
                        started_at,
                        status_code=429,
                        error=e.body,
                    )
                    if is_last:
                        raise RateLimitedError(
                            retry_after=self._retry_after, detail=f"{model}: {e.body}"
                        ) from e
                    continue

                self._record(
                    attempts,
                    trace_id,
                    model,
                    AttemptOutcome.HTTP_ERROR,
                    started_at,
                    status_code=e.status_code,
                    error=e.body,
                )
                continue

            except UpstreamPayloadError as e:
                self._record(
                    attempts, trace_id, model, AttemptOutcome.BAD_PAYLOAD, started_at, error=str(e)
                )
                continue

            except httpx.HTTPError as e:
                self._record(
                    attempts,
                    trace_id,
                    model,
                    AttemptOutcome.TRANSPORT_ERROR,
                    started_at,
                    error=f"{type(e).__name__}: {e}",
                )
                continue

            self._record(attempts, trace_id, model, AttemptOutcome.SUCCESS, started_at)
            return InvocationResult(response=response, attempts=attempts)

        raise AllModelsFailedError(attempts, detail=_summarize(attempts))

    async def open_stream(
        self,
        prompt: str,
        candidates: Sequence[str],
        config: GenerationConfig,
        *,
        timeout_seconds: float,
        trace_id: str | None = None,
    ) -> StreamSession:
        """Run the failover chain for a streaming generation.

        An attempt succeeds once the upstream answered 2xx and delivered its
        first text fragment within ``timeout_seconds``. After that the session
        is committed to this candidate.

        Raises:
            AllModelsFailedError: No candidate produced a first fragment
        """
        attempts: list[AttemptRecord] = []

        for model in candidates:
            started_at = self._clock()

            try:
                response, fragments, first = await asyncio.wait_for(
                    self._open_one(model, prompt, config), timeout=timeout_seconds
                )

            except asyncio.TimeoutError:
                self._record(
                    attempts,
                    trace_id,
                    model,
                    AttemptOutcome.TIMEOUT,
                    started_at,
                    error=f"timed out after {timeout_seconds:g}s",
                )
                continue

            except UpstreamStatusError as e:
                outcome = {
                    403: AttemptOutcome.AUTH_ERROR,
                    429: AttemptOutcome.RATE_LIMITED,
                }.get(e.status_code, AttemptOutcome.HTTP_ERROR)
                self._record(
                    attempts,
                    trace_id,
                    model,
                    outcome,
                    started_at,
                    status_code=e.status_code,
                    error=e.body,
                )
                continue

            except EmptyStreamError:
                self._record(attempts, trace_id, model, AttemptOutcome.EMPTY_STREAM, started_at)
                continue

            except httpx.HTTPError as e:
                self._record(
                    attempts,
                    trace_id,
                    model,
                    AttemptOutcome.TRANSPORT_ERROR,
                    started_at,
                    error=f"{type(e).__name__}: {e}",
                )
                continue

            self._record(attempts, trace_id, model, AttemptOutcome.SUCCESS, started_at)
            return StreamSession(model, response, fragments, first, attempts)

        raise AllModelsFailedError(attempts, detail=_summarize(attempts))

    async def _open_one(
        self, model: str, prompt: str, config: GenerationConfig
    ) -> tuple[httpx.Response, AsyncIterator[str], str]:
        response = await self._client.open_stream(model, prompt, config)
        fragments = iter_stream_fragments(response.aiter_lines())
        try:
            first = await anext(fragments)
        except StopAsyncIteration:
            await response.aclose()
            raise EmptyStreamError(model) from None
        except BaseException:
            # Includes cancellation by the attempt timeout
            await fragments.aclose()
            await response.aclose()
            raise
        return response, fragments, first

    def _record(
        self,
        attempts: list[AttemptRecord],
        trace_id: str | None,
        model: str,
        outcome: AttemptOutcome,
        started_at: float,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        record = AttemptRecord(
            model=model,
            outcome=outcome,
            started_at=started_at,
            finished_at=self._clock(),
            status_code=status_code,
            error=error,
        )
        attempts.append(record)
        self._metrics.record_attempt(model, outcome.value, record.latency_ms)
        self._logger.log_attempt(
            trace_id,
            model,
            len(attempts),
            outcome.value,
            record.latency_ms,
            status_code=status_code,
            error_reason=error,
        )


def _summarize(attempts: list[AttemptRecord]) -> str:
    if not attempts:
        return "no model candidates configured"
    return "; ".join(
        f"{a.model}: {a.outcome.value}"
        + (f" ({a.status_code})" if a.status_code is not None else "")
        for a in attempts
    )
