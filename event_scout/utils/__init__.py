"""Utility functions for the event scout project.

Re-exports the text-cleaning, parsing, retry and datetime helpers so that
imports like `from ..utils import repair_unescaped_quotes` work as expected.
"""

from .text_cleaning import strip_think_blocks, html_to_markdown  # noqa: F401
from .datetime_utils import get_current_timestamp, parse_event_time, event_date  # noqa: F401
from .llm_parsing import repair_unescaped_quotes, extract_structured_json  # noqa: F401
from .retry import (  # noqa: F401
    is_rate_limit_error,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)

__all__ = [
    "strip_think_blocks",
    "html_to_markdown",
    "get_current_timestamp",
    "parse_event_time",
    "event_date",
    "repair_unescaped_quotes",
    "extract_structured_json",
    "is_rate_limit_error",
    "is_retryable_error",
    "retry_with_backoff",
    "with_retry",
]
