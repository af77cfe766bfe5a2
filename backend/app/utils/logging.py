"""Structured logging for text-generation calls."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredLLMLogger:
    """Structured logger for model attempts in the fallback chain."""

    def log_attempt(
        self,
        model: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
        status: int | None = None,
    ) -> None:
        """Log one model call with structured data."""
        log_data: dict[str, Any] = {
            "model": model,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason
        if status is not None:
            log_data["status"] = status

        log_msg = f"Model call: {model} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
