"""Inbound request bodies.

Fields are optional at the schema level on purpose: missing values are
reported with the gateway's own error codes (MISSING_INPUT, MISSING_MESSAGES)
instead of FastAPI's generic 422.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ITINERARY_REQUEST_TYPE = "itinerary_generation"


class ChatMessage(BaseModel):
    """One conversation turn."""

    model_config = ConfigDict(extra="ignore")

    role: str = "user"
    content: str = ""


class GenerateRequest(BaseModel):
    """Body of /api/gemini and /api/generate-itinerary."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Any: validated by the sanitizer so non-text input maps to INVALID_INPUT
    user_input: Any = Field(None, alias="userInput")
    prompt: Any = None  # legacy clients send the text under "prompt"
    request_type: str | None = Field(None, alias="requestType")
    stream: bool = False

    def raw_input(self) -> Any:
        """User text, preferring ``userInput`` over the legacy ``prompt``."""
        return self.user_input if self.user_input is not None else self.prompt


class ChatRequest(BaseModel):
    """Body of /api/chat."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: list[ChatMessage] | None = None
    conversation_history: list[ChatMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )


class CheckoutRequest(BaseModel):
    """Body of /api/create-checkout."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str | None = Field(None, alias="userId")
    user_email: str | None = Field(None, alias="userEmail")
    plan: str | None = None
