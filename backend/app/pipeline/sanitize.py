"""Input sanitizer - runs before any user text reaches a prompt."""

import re
from typing import Any

from backend.app.errors import InvalidInputError

MAX_INPUT_CHARS = 10_000

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_ANGLE_BRACKETS_RE = re.compile(r"[<>]")


def sanitize(raw: Any) -> str:
    """Validate and clean raw user text.

    Args:
        raw: Untrusted value from the request body

    Returns:
        Trimmed text without control characters or angle brackets, at most
        MAX_INPUT_CHARS long

    Raises:
        InvalidInputError: If raw is missing, not a string, blank, or longer
            than MAX_INPUT_CHARS after trimming
    """
    if not raw or not isinstance(raw, str):
        raise InvalidInputError("Invalid input: must be a non-empty string")

    trimmed = raw.strip()

    if not trimmed:
        raise InvalidInputError("Invalid input: cannot be empty")

    if len(trimmed) > MAX_INPUT_CHARS:
        raise InvalidInputError("Invalid input: too long (max 10,000 characters)")

    cleaned = _CONTROL_CHARS_RE.sub("", trimmed)
    cleaned = _ANGLE_BRACKETS_RE.sub("", cleaned).strip()

    # Input made only of stripped characters
    if not cleaned:
        raise InvalidInputError("Invalid input: cannot be empty")

    return cleaned[:MAX_INPUT_CHARS]
