"""
Retry policy for failed sync attempts.
"""
from __future__ import annotations

TRANSIENT_MARKERS = ("network", "timeout", "temporary")
RETRY_PROGRESS_THRESHOLD = 50
PARTIAL_RESULT_THRESHOLD = 30


def is_transient(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def should_retry(progress: int, message: str, retry_count: int, max_retries: int = 3) -> bool:
    """Only late, transient failures are retried, and only up to *max_retries* times."""
    return progress > RETRY_PROGRESS_THRESHOLD and is_transient(message) and retry_count < max_retries


def retry_delay(retry_count: int, base: float = 1.0, cap: float = 30.0) -> float:
    return min(base * (2 ** retry_count), cap)


def keeps_partial_result(progress: int) -> bool:
    return progress > PARTIAL_RESULT_THRESHOLD


def format_failure(message: str, step: str | None, progress: int) -> str:
    return f"{message} (Step: {step or 'unknown'}, Progress: {progress}%)"
