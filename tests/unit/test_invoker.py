"""Unit tests for the model invoker.

Tests cover:
1. Priority ordering and failover
2. Per-attempt timeouts
3. 403 / 429 handling
4. Sequential (never concurrent) attempts
5. Streaming chain, empty streams and mid-stream interruption
6. Metrics and logging wiring
"""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
from prometheus_client import REGISTRY

from backend.app.errors import AllModelsFailedError, AuthError, ErrorKind, RateLimitedError
from backend.app.llm.client import (
    GeminiClient,
    GenerationConfig,
    ModelResponse,
    UpstreamPayloadError,
    UpstreamStatusError,
)
from backend.app.llm.invoker import AttemptOutcome, ModelInvoker
from backend.app.utils.metrics import PrometheusInvocationMetrics
from tests.helpers import UpstreamStub, gemini_payload

CONFIG = GenerationConfig()


class ScriptedClient:
    """GenerativeClient double answering from a per-model script.

    A script entry is a ModelResponse, an exception instance, or a float
    (seconds to sleep before answering, used to trigger timeouts).
    """

    def __init__(self, script: dict[str, Any]) -> None:
        self.script = script
        self.calls: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.cancelled: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, model: str, prompt: str, config: GenerationConfig) -> ModelResponse:
        self.calls.append(model)
        self.events.append(("start", model))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            reply = self.script[model]
            if isinstance(reply, float):
                await asyncio.sleep(reply)
                return ModelResponse(model=model, text="late")
            if isinstance(reply, Exception):
                raise reply
            return reply
        except asyncio.CancelledError:
            self.cancelled.append(model)
            raise
        finally:
            self.in_flight -= 1
            self.events.append(("end", model))

    async def open_stream(
        self, model: str, prompt: str, config: GenerationConfig
    ) -> httpx.Response:
        raise NotImplementedError


class RecordingMetrics:
    def __init__(self) -> None:
        self.recorded: list[tuple[str, str]] = []

    def record_attempt(self, model: str, outcome: str, latency_ms: float) -> None:
        assert latency_ms >= 0
        self.recorded.append((model, outcome))


class RecordingLogger:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

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
        self.entries.append(
            {
                "trace_id": trace_id,
                "model": model,
                "attempt": attempt,
                "outcome": outcome,
                "status_code": status_code,
            }
        )


def ok_response(model: str, text: str = "{}") -> ModelResponse:
    return ModelResponse(model=model, text=text)


class TestFailover:
    @pytest.mark.asyncio
    async def test_third_candidate_wins_after_two_500s(self) -> None:
        client = ScriptedClient(
            {
                "a": UpstreamStatusError(500, "boom"),
                "b": UpstreamStatusError(500, "boom"),
                "c": ok_response("c", "third"),
            }
        )
        invoker = ModelInvoker(client)

        result = await invoker.invoke("p", ["a", "b", "c"], CONFIG, timeout_seconds=1)

        assert result.response.text == "third"
        assert client.calls == ["a", "b", "c"]
        assert len(result.failures) == 2
        assert [f.status_code for f in result.failures] == [500, 500]
        assert [a.outcome for a in result.attempts] == [
            AttemptOutcome.HTTP_ERROR,
            AttemptOutcome.HTTP_ERROR,
            AttemptOutcome.SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_first_success_stops_chain(self) -> None:
        client = ScriptedClient({"a": ok_response("a"), "b": ok_response("b")})

        result = await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=1)

        assert result.response.model == "a"
        assert client.calls == ["a"]
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_transport_and_payload_errors_fall_through(self) -> None:
        client = ScriptedClient(
            {
                "a": httpx.ConnectError("refused"),
                "b": UpstreamPayloadError("not json"),
                "c": ok_response("c"),
            }
        )

        result = await ModelInvoker(client).invoke("p", ["a", "b", "c"], CONFIG, timeout_seconds=1)

        assert [f.outcome for f in result.failures] == [
            AttemptOutcome.TRANSPORT_ERROR,
            AttemptOutcome.BAD_PAYLOAD,
        ]

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self) -> None:
        client = ScriptedClient(
            {"a": UpstreamStatusError(500, "secret upstream body"), "b": httpx.ReadTimeout("slow")}
        )

        with pytest.raises(AllModelsFailedError) as exc_info:
            await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=1)

        error = exc_info.value
        assert error.kind == ErrorKind.ALL_MODELS_FAILED
        assert error.status_code == 500
        assert len(error.attempts) == 2
        assert error.detail == "a: http_error (500); b: transport_error"
        assert "secret upstream body" not in error.message
        assert client.calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_candidate_list(self) -> None:
        with pytest.raises(AllModelsFailedError) as exc_info:
            await ModelInvoker(ScriptedClient({})).invoke("p", [], CONFIG, timeout_seconds=1)

        assert exc_info.value.attempts == []
        assert exc_info.value.detail == "no model candidates configured"


class TestStatusHandling:
    @pytest.mark.asyncio
    async def test_403_aborts_chain(self) -> None:
        client = ScriptedClient(
            {"a": UpstreamStatusError(403, "bad key"), "b": ok_response("b")}
        )

        with pytest.raises(AuthError) as exc_info:
            await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=1)

        assert client.calls == ["a"]
        assert exc_info.value.kind == ErrorKind.AI_AUTH_ERROR
        assert exc_info.value.status_code == 500
        assert "bad key" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_429_on_non_final_candidate_falls_through(self) -> None:
        client = ScriptedClient(
            {"a": UpstreamStatusError(429, "quota"), "b": ok_response("b")}
        )

        result = await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=1)

        assert result.response.model == "b"
        assert result.failures[0].outcome == AttemptOutcome.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_429_on_final_candidate_is_rate_limited(self) -> None:
        client = ScriptedClient(
            {"a": UpstreamStatusError(500, "x"), "b": UpstreamStatusError(429, "quota")}
        )
        invoker = ModelInvoker(client, retry_after_seconds=45)

        with pytest.raises(RateLimitedError) as exc_info:
            await invoker.invoke("p", ["a", "b"], CONFIG, timeout_seconds=1)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 45
        assert client.calls == ["a", "b"]


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_timeout_moves_to_next_candidate(self) -> None:
        client = ScriptedClient({"slow": 5.0, "fast": ok_response("fast")})

        result = await ModelInvoker(client).invoke(
            "p", ["slow", "fast"], CONFIG, timeout_seconds=0.1
        )

        assert result.response.model == "fast"
        assert result.failures[0].outcome == AttemptOutcome.TIMEOUT
        assert client.cancelled == ["slow"]

    @pytest.mark.asyncio
    async def test_each_attempt_gets_full_timeout(self) -> None:
        # Total elapsed exceeds one deadline; each attempt alone does not
        client = ScriptedClient({"a": 5.0, "b": 0.2})

        result = await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=0.3)

        assert result.response.model == "b"
        assert result.response.text == "late"
        assert result.attempts[-1].finished_at - result.attempts[0].started_at > 0.3

    @pytest.mark.asyncio
    async def test_every_candidate_times_out(self) -> None:
        client = ScriptedClient({"a": 5.0, "b": 5.0})

        with pytest.raises(AllModelsFailedError) as exc_info:
            await ModelInvoker(client).invoke("p", ["a", "b"], CONFIG, timeout_seconds=0.05)

        assert [a.outcome for a in exc_info.value.attempts] == [
            AttemptOutcome.TIMEOUT,
            AttemptOutcome.TIMEOUT,
        ]
        assert client.cancelled == ["a", "b"]


class TestSequentialAttempts:
    @pytest.mark.asyncio
    async def test_attempts_never_overlap(self) -> None:
        client = ScriptedClient(
            {
                "a": UpstreamStatusError(500, "x"),
                "b": 5.0,
                "c": httpx.ConnectError("refused"),
                "d": ok_response("d"),
            }
        )

        result = await ModelInvoker(client).invoke(
            "p", ["a", "b", "c", "d"], CONFIG, timeout_seconds=0.05
        )

        assert client.max_in_flight == 1
        assert client.events == [
            ("start", "a"),
            ("end", "a"),
            ("start", "b"),
            ("end", "b"),
            ("start", "c"),
            ("end", "c"),
            ("start", "d"),
            ("end", "d"),
        ]
        for previous, current in zip(result.attempts, result.attempts[1:]):
            assert current.started_at >= previous.finished_at


class TestInstrumentation:
    @pytest.mark.asyncio
    async def test_metrics_and_logger_see_every_attempt(self) -> None:
        client = ScriptedClient({"a": UpstreamStatusError(503, "x"), "b": ok_response("b")})
        metrics = RecordingMetrics()
        attempt_logger = RecordingLogger()

        await ModelInvoker(client, metrics, attempt_logger).invoke(
            "p", ["a", "b"], CONFIG, timeout_seconds=1, trace_id="trace-1"
        )

        assert metrics.recorded == [("a", "http_error"), ("b", "success")]
        assert [e["attempt"] for e in attempt_logger.entries] == [1, 2]
        assert attempt_logger.entries[0]["status_code"] == 503
        assert {e["trace_id"] for e in attempt_logger.entries} == {"trace-1"}

    @pytest.mark.asyncio
    async def test_prometheus_counter_increments(self) -> None:
        client = ScriptedClient({"prom-model": ok_response("prom-model")})
        labels = {"model": "prom-model", "outcome": "success"}
        before = REGISTRY.get_sample_value("model_attempts_total", labels) or 0.0

        await ModelInvoker(client, PrometheusInvocationMetrics()).invoke(
            "p", ["prom-model"], CONFIG, timeout_seconds=1
        )

        assert REGISTRY.get_sample_value("model_attempts_total", labels) == before + 1


class BrokenStream(httpx.AsyncByteStream):
    """Delivers one chunk, then fails like a dropped connection."""

    def __init__(self, first_chunk: bytes) -> None:
        self._first_chunk = first_chunk

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self._first_chunk
        raise httpx.ReadError("connection reset")


def streaming_invoker(upstream: UpstreamStub) -> ModelInvoker:
    client = GeminiClient(
        "k",
        base_url="https://gemini.test/v1beta",
        client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
    )
    return ModelInvoker(client)


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_fails_over_to_next_candidate(self) -> None:
        upstream = UpstreamStub()
        upstream.reply_status("s1", 500)
        upstream.reply_stream("s2", "Day 1: ", "Rome")

        session = await streaming_invoker(upstream).open_stream(
            "p", ["models/s1", "models/s2"], CONFIG, timeout_seconds=1
        )
        fragments = [f async for f in session.fragments()]

        assert session.model == "models/s2"
        assert fragments == ["Day 1: ", "Rome"]
        assert session.interrupted is False
        assert [a.outcome for a in session.attempts] == [
            AttemptOutcome.HTTP_ERROR,
            AttemptOutcome.SUCCESS,
        ]
        assert upstream.calls == [("s1", "streamGenerateContent"), ("s2", "streamGenerateContent")]

    @pytest.mark.asyncio
    async def test_empty_stream_counts_as_failure(self) -> None:
        upstream = UpstreamStub()
        upstream.reply_stream("s1")
        upstream.reply_stream("s2", "text")

        session = await streaming_invoker(upstream).open_stream(
            "p", ["s1", "s2"], CONFIG, timeout_seconds=1
        )
        await session.aclose()

        assert session.attempts[0].outcome == AttemptOutcome.EMPTY_STREAM
        assert session.model == "s2"

    @pytest.mark.asyncio
    async def test_403_and_429_fall_through_when_streaming(self) -> None:
        upstream = UpstreamStub()
        upstream.reply_status("s1", 403)
        upstream.reply_status("s2", 429)

        with pytest.raises(AllModelsFailedError) as exc_info:
            await streaming_invoker(upstream).open_stream(
                "p", ["s1", "s2"], CONFIG, timeout_seconds=1
            )

        assert [a.outcome for a in exc_info.value.attempts] == [
            AttemptOutcome.AUTH_ERROR,
            AttemptOutcome.RATE_LIMITED,
        ]

    @pytest.mark.asyncio
    async def test_first_fragment_deadline(self) -> None:
        upstream = UpstreamStub()

        async def stall(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        upstream.reply("s1", stall)
        upstream.reply_stream("s2", "quick")

        session = await streaming_invoker(upstream).open_stream(
            "p", ["s1", "s2"], CONFIG, timeout_seconds=0.05
        )
        fragments = [f async for f in session.fragments()]

        assert session.attempts[0].outcome == AttemptOutcome.TIMEOUT
        assert fragments == ["quick"]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_keeps_delivered_fragments(self) -> None:
        upstream = UpstreamStub()
        chunk = f"data: {json.dumps(gemini_payload('partial'))}\n\n".encode()
        upstream.reply("s1", httpx.Response(200, stream=BrokenStream(chunk)))
        upstream.reply_stream("s2", "should not be used")

        session = await streaming_invoker(upstream).open_stream(
            "p", ["s1", "s2"], CONFIG, timeout_seconds=1
        )
        fragments = [f async for f in session.fragments()]

        assert fragments == ["partial"]
        assert session.interrupted is True
        assert upstream.models_called == ["s1"]
