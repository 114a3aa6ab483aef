"""Service layer modules grouping business logic by concern.

This module provides convenience re-exports so that callers can simply do for
example `from event_scout.services import find_duplicate_event` without having
to know which underlying module provides the symbol.
"""

from .discovery import search_event_sources, classify_source  # noqa: F401
from .fetching import fetch_page_with_fallback  # noqa: F401
from .extraction import extract_events_from_content  # noqa: F401
from .confidence import calculate_confidence  # noqa: F401
from .matching import find_duplicate_event, group_duplicates, titles_are_similar  # noqa: F401
from .reporting import send_agent_report, alert_error  # noqa: F401
from .run_log import cleanup_stuck_runs, start_run, complete_run  # noqa: F401

__all__ = [
    "search_event_sources",
    "classify_source",
    "fetch_page_with_fallback",
    "extract_events_from_content",
    "calculate_confidence",
    "find_duplicate_event",
    "group_duplicates",
    "titles_are_similar",
    "send_agent_report",
    "alert_error",
    "cleanup_stuck_runs",
    "start_run",
    "complete_run",
]
