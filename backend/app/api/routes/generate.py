"""Itinerary generation endpoints - POST /api/gemini, POST /api/generate-itinerary."""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from backend.app.api.deps import get_pipeline
from backend.app.errors import AllModelsFailedError, ErrorKind, InvalidInputError
from backend.app.models.requests import ITINERARY_REQUEST_TYPE, GenerateRequest
from backend.app.models.responses import GenerateResponse, GenerationMetadata, ItineraryResponse
from backend.app.pipeline.generation import GenerationPipeline, PreparedRequest, TextResult

router = APIRouter(prefix="/api", tags=["generate"])
logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


def read_user_input(body: GenerateRequest) -> object:
    """Return the raw user text after request-level checks.

    Raises:
        InvalidInputError: MISSING_INPUT or INVALID_REQUEST_TYPE
    """
    raw = body.raw_input()
    if raw is None or raw == "":
        raise InvalidInputError(
            "Missing required field: userInput", kind=ErrorKind.MISSING_INPUT
        )
    if body.request_type and body.request_type != ITINERARY_REQUEST_TYPE:
        raise InvalidInputError(
            'Invalid request type. Only "itinerary_generation" is supported.',
            kind=ErrorKind.INVALID_REQUEST_TYPE,
        )
    return raw


def _text_envelope(result: TextResult) -> GenerateResponse:
    return GenerateResponse(
        response=result.text,
        metadata=GenerationMetadata(
            processingTimeMs=result.processing_time_ms,
            wordCount=result.metadata.word_count,
            hasSpecificDates=result.metadata.has_specific_dates,
            isMultiCity=result.metadata.is_multi_city,
            truncated=True if result.truncated else None,
        ),
    )


async def _stream_or_fallback(
    pipeline: GenerationPipeline, prepared: PreparedRequest, trace_id: str
) -> StreamingResponse | GenerateResponse:
    try:
        session = await pipeline.open_stream(prepared, trace_id=trace_id)
    except AllModelsFailedError as e:
        # Single fallback per request; errors from it propagate
        logger.warning(
            "Streaming chain exhausted, falling back to non-streaming generation",
            extra={"trace_id": trace_id, "structured": {"detail": e.detail}},
        )
        return _text_envelope(await pipeline.generate_text(prepared, trace_id=trace_id))

    logger.info(f"Streaming from {session.model}", extra={"trace_id": trace_id})
    return StreamingResponse(
        session.fragments(),
        media_type=STREAM_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/gemini",
    response_model=GenerateResponse,
    response_model_exclude_none=True,
    responses={200: {"content": {STREAM_MEDIA_TYPE: {}}}},
)
async def generate_text(
    body: GenerateRequest,
    pipeline: Annotated[GenerationPipeline, Depends(get_pipeline)],
) -> StreamingResponse | GenerateResponse:
    """Generate an itinerary and return the model text in an envelope.

    With ``stream: true`` the text is streamed as plain-text chunks instead.
    If no streaming candidate produces output the request is served once by
    the non-streaming chain and answered with the JSON envelope.
    """
    prepared = pipeline.prepare_itinerary(read_user_input(body))
    trace_id = uuid.uuid4().hex

    if body.stream:
        return await _stream_or_fallback(pipeline, prepared, trace_id)

    result = await pipeline.generate_text(prepared, trace_id=trace_id)
    logger.info(
        f"Generated itinerary text with {result.model} in {result.processing_time_ms}ms",
        extra={"trace_id": trace_id},
    )
    return _text_envelope(result)


@router.post("/generate-itinerary", response_model=ItineraryResponse)
async def generate_itinerary(
    body: GenerateRequest,
    pipeline: Annotated[GenerationPipeline, Depends(get_pipeline)],
) -> JSONResponse:
    """Generate and return a structured itinerary.

    Null values inside the itinerary are kept as the model produced them;
    ``truncated`` is only present when set.
    """
    prepared = pipeline.prepare_itinerary(read_user_input(body))
    trace_id = uuid.uuid4().hex

    result = await pipeline.generate_itinerary(prepared, trace_id=trace_id)
    logger.info(
        f"Resolved itinerary with {len(result.itinerary.days)} day(s) from {result.model} "
        f"in {result.processing_time_ms}ms",
        extra={"trace_id": trace_id},
    )
    content: dict[str, Any] = {
        "itinerary": result.itinerary.model_dump(mode="json", by_alias=True)
    }
    if result.truncated:
        content["truncated"] = True
    return JSONResponse(content=content)
