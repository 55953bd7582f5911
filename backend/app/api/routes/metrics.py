"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes model_attempt_latency_ms{model, outcome},
    model_attempts_total{model, outcome} and
    resolution_outcomes_total{endpoint, outcome}.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
