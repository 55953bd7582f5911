"""Exception handlers rendering every failure as ``{error, code, retryAfter?}``."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app.config import get_settings
from backend.app.errors import ErrorKind, GatewayError
from backend.app.models.responses import ErrorResponse

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "/health",
    "/api/status",
    "/api/gemini",
    "/api/generate-itinerary",
    "/api/chat",
    "/api/create-checkout",
]


def error_response(
    status_code: int,
    body: ErrorResponse,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Serialize an error body with camelCase keys, dropping unset fields."""
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render a classified failure. ``exc.detail`` goes to the log only."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{request.method} {request.url.path} failed: {exc.kind.value}",
        extra={"structured": {"code": exc.kind.value, "detail": exc.detail}},
    )

    headers = None
    if exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    return error_response(
        exc.status_code,
        ErrorResponse(error=exc.message, code=exc.kind.value, retryAfter=exc.retry_after),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Unparseable or mistyped request bodies are invalid input."""
    logger.info(f"Rejected body on {request.url.path}: {len(exc.errors())} validation error(s)")
    return error_response(
        400,
        ErrorResponse(error="Invalid request body", code=ErrorKind.INVALID_INPUT.value),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """404 lists the available endpoints; other HTTP errors keep their status."""
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={"error": "Endpoint not found", "availableEndpoints": AVAILABLE_ENDPOINTS},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: 500 without internals, except in development."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    settings = getattr(request.app.state, "settings", None) or get_settings()
    details = str(exc) if settings.is_development else None
    return error_response(
        500,
        ErrorResponse(
            error="Internal server error", code=ErrorKind.INTERNAL_ERROR.value, details=details
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler to the application."""
    app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
