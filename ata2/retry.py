"""Retry policy for transient server errors."""

import json
import logging
from dataclasses import dataclass

_log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BACKOFF_SECONDS = 0.5
RETRYABLE_ERROR_TYPE = "server_error"


def error_type_of(raw_error_frame: str) -> str:
    """Extract ``error.type`` from a raw frame, or ``""`` when absent."""
    try:
        payload = json.loads(raw_error_frame)
    except (TypeError, ValueError):
        return ""
    if not isinstance(payload, dict):
        return ""
    error = payload.get("error")
    if not isinstance(error, dict):
        return ""
    error_type = error.get("type")
    return error_type if isinstance(error_type, str) else ""


def should_retry(raw_error_frame: str, attempt: int, max_attempts: int = MAX_ATTEMPTS) -> bool:
    """Resubmit only for ``server_error`` payloads while attempts remain."""
    retry = attempt < max_attempts and error_type_of(raw_error_frame) == RETRYABLE_ERROR_TYPE
    if retry:
        _log.info("server_error on attempt %d/%d, retrying", attempt, max_attempts)
    return retry


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = MAX_ATTEMPTS
    backoff_seconds: float = BACKOFF_SECONDS

    def should_retry(self, raw_error_frame: str, attempt: int) -> bool:
        return should_retry(raw_error_frame, attempt, self.max_attempts)
