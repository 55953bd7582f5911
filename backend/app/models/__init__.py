"""Models package - re-exports for convenience."""

from backend.app.models.itinerary import Activity, Day, ResolvedItinerary
from backend.app.models.metadata import RequestMetadata
from backend.app.models.requests import (
    ChatMessage,
    ChatRequest,
    CheckoutRequest,
    GenerateRequest,
)
from backend.app.models.responses import (
    ChatResponse,
    CheckoutResponse,
    ErrorResponse,
    GenerateResponse,
    GenerationMetadata,
    ItineraryResponse,
)

__all__ = [
    # Itinerary
    "ResolvedItinerary",
    "Day",
    "Activity",
    # Metadata
    "RequestMetadata",
    # Requests
    "ChatMessage",
    "ChatRequest",
    "CheckoutRequest",
    "GenerateRequest",
    # Responses
    "GenerateResponse",
    "GenerationMetadata",
    "ItineraryResponse",
    "ChatResponse",
    "CheckoutResponse",
    "ErrorResponse",
]
