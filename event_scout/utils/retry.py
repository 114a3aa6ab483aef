"""Retry helpers for transient failures and rate limits."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import openai
import requests

from ..exceptions import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Rate-limit backoff settings (extraction backend)
# Delays run 4s, 8s, 16s, 32s: the backend allows ~20 requests/minute.
# ---------------------------------------------------------------------------
BACKOFF_MAX_RETRIES: int = 4
BACKOFF_INITIAL_DELAY: float = 4.0

_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "enotfound",
    "econnrefused",
    "connection reset",
    "connection refused",
    "connection aborted",
    "name or service not known",
    "temporary failure in name resolution",
    "remote end closed connection",
)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return ``True`` for errors that mean "slow down"."""
    if isinstance(exc, openai.RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return "429" in message or "rate limit" in message


def is_retryable_error(exc: BaseException) -> bool:
    """Return ``True`` for transient network/timeout failures."""
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return True
    text = f"{type(exc).__name__} {exc}".lower()
    return any(pattern in text for pattern in _RETRYABLE_PATTERNS)


def retry_with_backoff(
    fn: Callable[[], T],
    max_retries: int = BACKOFF_MAX_RETRIES,
    initial_delay: float = BACKOFF_INITIAL_DELAY,
) -> T:
    """Call *fn*, retrying rate-limit errors with exponential backoff.

    Any other error propagates immediately. After ``max_retries`` retries
    the last rate-limit error is wrapped in :class:`RateLimitError`.
    """
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            if attempt == max_retries:
                raise RateLimitError(
                    f"Rate limit exceeded on extraction backend after {max_retries + 1} attempts",
                    original_error=exc,
                ) from exc

            delay = initial_delay * (2**attempt)
            logger.warning(
                "Rate limit hit (attempt %d/%d). Retrying in %.0fs…",
                attempt + 1,
                max_retries + 1,
                delay,
            )
            time.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


def with_retry(
    fn: Callable[[], T],
    max_attempts: int = 3,
    delay_seconds: float = 1.0,
    backoff_multiplier: float = 2.0,
    should_retry: Callable[[BaseException], bool] = lambda _exc: True,
) -> T:
    """Generic retry: re-raise the last error once attempts run out."""
    delay = delay_seconds
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt == max_attempts or not should_retry(exc):
                raise
            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.0fs…", attempt, max_attempts, exc, delay
            )
            time.sleep(delay)
            delay *= backoff_multiplier

    raise AssertionError("unreachable")  # pragma: no cover

__all__ = [
    "BACKOFF_MAX_RETRIES",
    "BACKOFF_INITIAL_DELAY",
    "is_rate_limit_error",
    "is_retryable_error",
    "retry_with_backoff",
    "with_retry",
]
