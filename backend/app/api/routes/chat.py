"""Conversational endpoint - POST /api/chat."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from backend.app.api.deps import get_pipeline
from backend.app.models.requests import ChatRequest
from backend.app.models.responses import ChatResponse
from backend.app.pipeline.generation import GenerationPipeline

router = APIRouter(prefix="/api", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    body: ChatRequest,
    pipeline: Annotated[GenerationPipeline, Depends(get_pipeline)],
) -> ChatResponse:
    """Answer the latest message, using up to six earlier turns as context.

    The reply text is returned as produced (fencing removed); clients parse
    its ``type`` field themselves.
    """
    trace_id = uuid.uuid4().hex
    result = await pipeline.chat(body.messages, body.conversation_history, trace_id=trace_id)

    logger.info(
        f"Chat answered by {result.model} in {result.processing_time_ms}ms",
        extra={"trace_id": trace_id},
    )
    return ChatResponse(
        response=result.text,
        processingTimeMs=result.processing_time_ms,
        model=result.model,
        truncated=True if result.truncated else None,
    )
