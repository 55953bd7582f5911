"""Logging setup and structured logging for model attempts."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def preview(text: str, limit: int = 100) -> str:
    """Shorten user text for log lines."""
    return text if len(text) <= limit else f"{text[:limit]}..."


class StructuredAttemptLogger:
    """Structured logger for model attempts."""

    def log_attempt(
        self,
        trace_id: str | None,
        model: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        status_code: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log model attempt with structured data."""
        log_data: dict[str, Any] = {
            "trace_id": trace_id,
            "model": model,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if status_code is not None:
            log_data["status_code"] = status_code
        if error_reason:
            # Upstream bodies can be large
            log_data["error_reason"] = error_reason[:500]

        log_msg = f"Model attempt: {model} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
