"""Source discovery workflow: search → filter → track new listing pages."""

from __future__ import annotations

import logging
import time
from typing import Optional, Set

from pymongo.errors import DuplicateKeyError

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..config import TARGET_METRO
from ..exceptions import RunInProgressError
from ..models import RunStats, SourceCandidate
from ..services.catalog import ensure_indexes, get_tracked_source_urls, insert_source
from ..services.discovery import (
    build_source_document,
    classify_source,
    is_blocked_source,
    normalize_url,
    search_event_sources,
)
from ..services.run_log import cleanup_stuck_runs, start_run
from .bookkeeping import fail_run, finish_run

AGENT_NAME: str = "Discovery Agent"

logger = logging.getLogger(__name__)


def load_tracked_urls() -> Set[str]:
    """Normalised base/events URLs of every source already in the catalog."""
    tracked: Set[str] = set()
    for base_url, events_url in get_tracked_source_urls():
        for url in (base_url, events_url):
            if url:
                tracked.add(normalize_url(url))
    return tracked


def process_candidate(candidate: SourceCandidate, metro: str, tracked: Set[str], stats: RunStats) -> None:
    """Filter one search hit and track it if it qualifies."""
    if is_blocked_source(candidate.url):
        stats.blocked_skipped += 1
        return

    normalized = normalize_url(candidate.url)
    if normalized in tracked:
        stats.duplicates_skipped += 1
        return

    classification = classify_source(candidate)
    if classification is None:
        return
    name, priority = classification

    try:
        insert_source(build_source_document(candidate, name, priority, metro))
    except DuplicateKeyError:
        stats.duplicates_skipped += 1
        return

    logger.info("Added new source: %s (%s, priority %d)", candidate.url, name, priority)
    tracked.add(normalized)
    stats.new_sources_added += 1


def run(metro: str = TARGET_METRO) -> RunStats:
    """Execute one discovery run for *metro*."""
    started = time.monotonic()
    stats = RunStats()
    run_id: Optional[str] = None

    try:
        cleanup_stuck_runs()
        run_id = start_run(AGENT_NAME)
        ensure_indexes()

        logger.info("Starting Discovery Agent for target metro: %s", metro)
        candidates, searches, search_errors = search_event_sources(metro)
        stats.searches_performed = searches
        stats.searches_failed = len(search_errors)
        stats.errors.extend(search_errors)
        stats.results_found = len(candidates)

        tracked = load_tracked_urls()
        for candidate in candidates:
            try:
                process_candidate(candidate, metro, tracked, stats)
            except Exception as exc:
                message = f"Error processing {candidate.url}: {exc}"
                logger.error(message)
                stats.errors.append(message)

        summary = f"Found {stats.results_found} results, added {stats.new_sources_added} new sources"
        finish_run(AGENT_NAME, run_id, stats, started, summary)
    except RunInProgressError as exc:
        # Another run holds the guard; nothing of ours to close or report
        logger.warning("Skipping %s: %s", AGENT_NAME, exc)
        raise
    except Exception as exc:
        fail_run(AGENT_NAME, run_id, stats, started, exc)
        raise

    _log_stats(stats)
    return stats


def _log_stats(stats: RunStats) -> None:
    logger.info("=== Discovery Statistics ===")
    logger.info("Searches performed: %d (%d failed)", stats.searches_performed, stats.searches_failed)
    logger.info("Results found: %d", stats.results_found)
    logger.info("New sources added: %d", stats.new_sources_added)
    logger.info("Duplicates skipped: %d", stats.duplicates_skipped)
    logger.info("Blocked skipped: %d", stats.blocked_skipped)
    logger.info("============================")

__all__ = ["run", "process_candidate", "load_tracked_urls"]
