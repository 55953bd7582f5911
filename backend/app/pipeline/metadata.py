"""Metadata extraction from sanitized user input."""

import re

from backend.app.models.metadata import RequestMetadata

_DATE_RE = re.compile(
    r"\d{1,2}[-/]\d{1,2}[-/]\d{4}"
    r"|\d{4}[-/]\d{1,2}[-/]\d{1,2}"
    r"|\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\w*\s+\d{4}",
    re.IGNORECASE,
)

_MULTI_CITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(multi.?city|cities)\b", re.IGNORECASE),
    re.compile(r"\bvisiting:?\s*\w+.*,.*\w+", re.IGNORECASE),
    re.compile(r"\bthen\s+\w+\s*,?\s*\w+", re.IGNORECASE),
    re.compile(r"\band\s+\w+\s*\(\d+\s*days?\)", re.IGNORECASE),
)

_URL_RE = re.compile(r"https?://")


def find_dates(text: str) -> list[str]:
    """Return every date-like substring, in order of appearance."""
    return [m.group(0) for m in _DATE_RE.finditer(text)]


def is_multi_city(text: str) -> bool:
    """True if any multi-city indicator matches."""
    return any(pattern.search(text) for pattern in _MULTI_CITY_PATTERNS)


def extract_metadata(sanitized: str) -> RequestMetadata:
    """Derive prompt-selection signals from sanitized input.

    Pure and total: never raises for any string input.
    """
    found_dates = find_dates(sanitized)
    return RequestMetadata(
        has_specific_dates=bool(found_dates),
        is_multi_city=is_multi_city(sanitized),
        found_dates=tuple(found_dates),
        word_count=len(sanitized.split()),
        contains_urls=bool(_URL_RE.search(sanitized)),
    )
