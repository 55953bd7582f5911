"""Response envelopes returned by the HTTP layer."""

from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.itinerary import ResolvedItinerary


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerationMetadata(_CamelModel):
    """Metadata echoed alongside a text response."""

    processing_time_ms: int = Field(..., alias="processingTimeMs")
    word_count: int = Field(..., alias="wordCount")
    has_specific_dates: bool = Field(..., alias="hasSpecificDates")
    is_multi_city: bool = Field(..., alias="isMultiCity")
    truncated: bool | None = None


class GenerateResponse(_CamelModel):
    """Envelope for /api/gemini."""

    response: str
    metadata: GenerationMetadata


class ItineraryResponse(_CamelModel):
    """Envelope for /api/generate-itinerary."""

    itinerary: ResolvedItinerary
    truncated: bool | None = None


class ChatResponse(_CamelModel):
    """Envelope for /api/chat."""

    response: str
    processing_time_ms: int = Field(..., alias="processingTimeMs")
    model: str
    truncated: bool | None = None


class CheckoutResponse(_CamelModel):
    """Envelope for /api/create-checkout."""

    checkout_url: str = Field(..., alias="checkoutUrl")
    plan: str
    message: str


class ErrorResponse(_CamelModel):
    """Error payload - stable ``code`` for programmatic branching."""

    error: str
    code: str
    retry_after: int | None = Field(None, alias="retryAfter")
    details: str | None = None
