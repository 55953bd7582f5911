"""Error taxonomy shared by the pipeline, the invoker and the HTTP layer.

Every failure a client can observe is a GatewayError carrying a stable
ErrorKind. The ``message`` is safe to show to users; anything internal
(upstream bodies, attempt logs, parse errors) lives in ``detail`` and is only
ever logged.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error codes returned in the ``code`` field."""

    INVALID_INPUT = "INVALID_INPUT"
    MISSING_INPUT = "MISSING_INPUT"
    INVALID_REQUEST_TYPE = "INVALID_REQUEST_TYPE"
    MISSING_MESSAGES = "MISSING_MESSAGES"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    SAFETY_FILTERED = "SAFETY_FILTERED"
    MAX_TOKENS_EXCEEDED = "MAX_TOKENS_EXCEEDED"
    NO_JSON_FOUND = "NO_JSON_FOUND"
    MALFORMED_JSON = "MALFORMED_JSON"
    ALL_MODELS_FAILED = "ALL_MODELS_FAILED"
    AI_RATE_LIMITED = "AI_RATE_LIMITED"
    AI_AUTH_ERROR = "AI_AUTH_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CHECKOUT_UNAVAILABLE = "CHECKOUT_UNAVAILABLE"
    INVALID_PLAN = "INVALID_PLAN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.MISSING_INPUT: 400,
    ErrorKind.INVALID_REQUEST_TYPE: 400,
    ErrorKind.MISSING_MESSAGES: 400,
    ErrorKind.SAFETY_FILTERED: 400,
    ErrorKind.INVALID_PLAN: 400,
    ErrorKind.AI_RATE_LIMITED: 429,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CHECKOUT_UNAVAILABLE: 503,
}

_DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "Invalid input",
    ErrorKind.MISSING_INPUT: "Missing required field: userInput",
    ErrorKind.INVALID_REQUEST_TYPE: (
        'Invalid request type. Only "itinerary_generation" is supported.'
    ),
    ErrorKind.MISSING_MESSAGES: "Missing messages array",
    ErrorKind.EMPTY_RESPONSE: "AI service returned an empty response",
    ErrorKind.SAFETY_FILTERED: (
        "Content was filtered by safety systems. Please try a different request."
    ),
    ErrorKind.MAX_TOKENS_EXCEEDED: (
        "Response too long for AI service. Please try a shorter or more specific request."
    ),
    ErrorKind.NO_JSON_FOUND: "AI service returned a malformed response.",
    ErrorKind.MALFORMED_JSON: "AI service returned a malformed response.",
    ErrorKind.ALL_MODELS_FAILED: "AI service temporarily unavailable. Please try again.",
    ErrorKind.AI_RATE_LIMITED: (
        "AI service is temporarily overloaded. Please try again in a few moments."
    ),
    ErrorKind.AI_AUTH_ERROR: "AI service temporarily unavailable. Please try again.",
    ErrorKind.RATE_LIMITED: "Too many requests from this IP. Please try again later.",
    ErrorKind.SERVICE_UNAVAILABLE: "AI service not properly configured",
    ErrorKind.CHECKOUT_UNAVAILABLE: "Checkout not configured. Please contact support.",
    ErrorKind.INVALID_PLAN: 'Invalid plan. Only "pro" plan is available for purchase.',
    ErrorKind.INTERNAL_ERROR: "Internal server error",
}


def status_for(kind: ErrorKind) -> int:
    """HTTP status code for an error kind (500 unless listed otherwise)."""
    return _STATUS_BY_KIND.get(kind, 500)


class GatewayError(Exception):
    """Base class for every classified failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        detail: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        self.detail = detail
        self.retry_after = retry_after
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return status_for(self.kind)


class InvalidInputError(GatewayError):
    """User text is missing, not textual, empty or oversized."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INVALID_INPUT) -> None:
        super().__init__(kind, message)


class UpstreamError(GatewayError):
    """The generative-language API could not produce a usable reply."""

    pass


class AllModelsFailedError(UpstreamError):
    """Every model candidate in the chain failed."""

    def __init__(self, attempts: list | None = None, detail: str | None = None) -> None:
        self.attempts = list(attempts or [])
        super().__init__(ErrorKind.ALL_MODELS_FAILED, detail=detail)


class RateLimitedError(UpstreamError):
    """Upstream answered 429 on the final candidate."""

    def __init__(self, retry_after: int = 30, detail: str | None = None) -> None:
        super().__init__(ErrorKind.AI_RATE_LIMITED, detail=detail, retry_after=retry_after)


class AuthError(UpstreamError):
    """Upstream rejected our credentials (403)."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(ErrorKind.AI_AUTH_ERROR, detail=detail)


class ResolutionError(GatewayError):
    """The upstream reply could not be resolved into a usable result."""

    pass
