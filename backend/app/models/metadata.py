"""Request metadata derived from sanitized user input."""

from pydantic import BaseModel, ConfigDict, Field


class RequestMetadata(BaseModel):
    """Lightweight signals used to pick prompt variants.

    Immutable once computed; discarded after prompt assembly and after being
    echoed in the response envelope.
    """

    model_config = ConfigDict(frozen=True)

    has_specific_dates: bool = False
    is_multi_city: bool = False
    found_dates: tuple[str, ...] = ()
    word_count: int = Field(0, ge=0)
    contains_urls: bool = False
