"""Scripted Gemini upstream for tests."""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

Reply = httpx.Response | Exception | Callable[[httpx.Request], Awaitable[httpx.Response]]


def gemini_payload(
    text: str | None = "",
    finish_reason: str | None = "STOP",
    safety_ratings: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """generateContent response body with a single candidate."""
    candidate: dict[str, Any] = {}
    if text is not None:
        candidate["content"] = {"role": "model", "parts": [{"text": text}]}
    if finish_reason is not None:
        candidate["finishReason"] = finish_reason
    if safety_ratings is not None:
        candidate["safetyRatings"] = safety_ratings
    return {"candidates": [candidate]}


def sse_body(*fragments: str, done: bool = False) -> bytes:
    """streamGenerateContent body in server-sent-events framing."""
    events = [f"data: {json.dumps(gemini_payload(fragment))}\n\n" for fragment in fragments]
    if done:
        events.append("data: [DONE]\n\n")
    return "".join(events).encode()


def model_from_url(url: httpx.URL) -> tuple[str, str]:
    """Split ``.../models/<name>:<method>`` into (name, method)."""
    last = url.path.rsplit("/", 1)[-1]
    name, _, method = last.partition(":")
    return name, method


class UpstreamStub:
    """Scripted MockTransport handler for the Gemini REST API.

    Replies are queued per bare model name (without ``models/``); an
    unscripted call answers 500.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self._replies: dict[str, list[Reply]] = {}

    def reply(self, model: str, *replies: Reply) -> None:
        self._replies.setdefault(model.removeprefix("models/"), []).extend(replies)

    def reply_json(self, model: str, payload: dict[str, Any], status_code: int = 200) -> None:
        self.reply(model, httpx.Response(status_code, json=payload))

    def reply_text(self, model: str, text: str, finish_reason: str = "STOP") -> None:
        self.reply_json(model, gemini_payload(text, finish_reason))

    def reply_status(self, model: str, status_code: int, body: str = "upstream error") -> None:
        self.reply(model, httpx.Response(status_code, text=body))

    def reply_stream(self, model: str, *fragments: str) -> None:
        self.reply(
            model,
            httpx.Response(
                200, content=sse_body(*fragments), headers={"Content-Type": "text/event-stream"}
            ),
        )

    @property
    def models_called(self) -> list[str]:
        return [model for model, _ in self.calls]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        model, method = model_from_url(request.url)
        self.calls.append((model, method))

        queue = self._replies.get(model)
        if not queue:
            return httpx.Response(500, text=f"no reply scripted for {model}")

        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return await reply(request)
