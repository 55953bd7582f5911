"""Response resolver - turns raw upstream text into a result or a classified failure.

Stages, first terminal state wins:

1. Truncation - MAX_TOKENS finish: usable partial text (> 100 chars) resolves
   with ``truncated=True``; anything shorter fails with MAX_TOKENS_EXCEEDED.
2. Empty - no text: SAFETY finish fails with SAFETY_FILTERED, anything else
   with EMPTY_RESPONSE.
3. Fenced - a triple-backtick block is parsed first; a block that does not
   parse falls through to the bracket scan.
4. Bracket scan - first ``{`` to last ``}`` of the full text.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import ValidationError

from backend.app.errors import ErrorKind, ResolutionError
from backend.app.llm.client import FinishReason, ModelResponse
from backend.app.models.itinerary import ResolvedItinerary

logger = logging.getLogger(__name__)

# Partial text longer than this is worth returning after a MAX_TOKENS stop
PARTIAL_MIN_CHARS = 100

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OPENING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE_RE = re.compile(r"\s*```\s*$")


@dataclass(frozen=True)
class Resolved:
    """Successful resolution."""

    ok: ClassVar[bool] = True

    text: str
    itinerary: ResolvedItinerary | None = None
    truncated: bool = False
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolutionFailed:
    """Classified resolution failure. ``detail`` is for logs only."""

    ok: ClassVar[bool] = False

    kind: ErrorKind
    detail: str = ""

    def to_error(self) -> ResolutionError:
        return ResolutionError(self.kind, detail=self.detail)


ResolutionOutcome = Resolved | ResolutionFailed


def strip_fencing(text: str) -> str:
    """Remove a markdown code fence wrapping the whole text, if any.

    A missing closing fence (truncated output) only drops the opening one.
    """
    stripped = text.strip()
    if not stripped.startswith("```"):
        return text
    body = _OPENING_FENCE_RE.sub("", stripped, count=1)
    return _CLOSING_FENCE_RE.sub("", body)


def _parse_object(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _to_itinerary(source: str, data: dict[str, Any]) -> ResolutionOutcome:
    try:
        itinerary = ResolvedItinerary.model_validate(data)
    except ValidationError as e:
        return ResolutionFailed(
            ErrorKind.MALFORMED_JSON,
            f"parsed object does not fit itinerary shape: {e.error_count()} error(s)",
        )
    return Resolved(
        text=source,
        itinerary=itinerary,
        warnings=tuple(itinerary.schema_warnings()),
    )


def extract_itinerary(text: str) -> ResolutionOutcome:
    """Locate and parse the itinerary object embedded in model text.

    Args:
        text: Non-empty model output

    Returns:
        Resolved with the itinerary, or ResolutionFailed with NO_JSON_FOUND /
        MALFORMED_JSON
    """
    fenced = _FENCED_BLOCK_RE.search(text)
    if fenced:
        data = _parse_object(fenced.group(1))
        if data is not None:
            outcome = _to_itinerary(fenced.group(1), data)
            if outcome.ok:
                return outcome
        logger.debug("Fenced block did not resolve, falling back to bracket scan")

    start = text.find("{")
    end = text.rfind("}")

    if start == -1:
        return ResolutionFailed(ErrorKind.NO_JSON_FOUND, "no opening brace in response")
    if end == -1:
        return ResolutionFailed(ErrorKind.MALFORMED_JSON, "object opened but never closed")
    if end < start:
        return ResolutionFailed(ErrorKind.NO_JSON_FOUND, "closing brace precedes opening brace")

    candidate = text[start : end + 1]
    data = _parse_object(candidate)
    if data is None:
        return ResolutionFailed(
            ErrorKind.MALFORMED_JSON, f"bracket slice of {len(candidate)} chars did not parse"
        )
    return _to_itinerary(candidate, data)


def _resolve_truncated(response: ModelResponse, *, parse: bool) -> ResolutionOutcome:
    text = response.text
    if len(text) <= PARTIAL_MIN_CHARS:
        return ResolutionFailed(
            ErrorKind.MAX_TOKENS_EXCEEDED,
            f"{response.model} hit the token limit with {len(text)} chars of output",
        )

    itinerary = None
    if parse:
        # Attached only if the partial text happens to hold a complete object
        outcome = extract_itinerary(text)
        if isinstance(outcome, Resolved):
            itinerary = outcome.itinerary

    return Resolved(text=strip_fencing(text), itinerary=itinerary, truncated=True)


def _empty_failure(response: ModelResponse) -> ResolutionFailed:
    if response.finish_reason is FinishReason.SAFETY:
        return ResolutionFailed(
            ErrorKind.SAFETY_FILTERED,
            f"{response.model} blocked by safety filters: {response.safety_ratings}",
        )
    return ResolutionFailed(
        ErrorKind.EMPTY_RESPONSE,
        f"{response.model} returned no text (finish reason {response.finish_reason.value})",
    )


def resolve_itinerary(response: ModelResponse) -> ResolutionOutcome:
    """Resolve a raw response into a structured itinerary.

    Args:
        response: Raw upstream reply

    Returns:
        Resolved (itinerary set unless truncated) or ResolutionFailed
    """
    if response.finish_reason is FinishReason.MAX_TOKENS:
        return _resolve_truncated(response, parse=True)

    if not response.text.strip():
        return _empty_failure(response)

    return extract_itinerary(response.text)


def resolve_text(response: ModelResponse) -> ResolutionOutcome:
    """Resolve a raw response into cleaned text without requiring JSON.

    Used by the text envelope and chat endpoints; the client parses the text.
    """
    if response.finish_reason is FinishReason.MAX_TOKENS:
        return _resolve_truncated(response, parse=False)

    cleaned = strip_fencing(response.text)
    if not cleaned.strip():
        return _empty_failure(response)

    return Resolved(text=cleaned)
