"""Extraction workflow: fetch each source, extract events, reconcile with the catalog.

Sources are processed strictly one at a time with a fixed pause between
them. Collection stops once ``MAX_EVENTS_PER_RUN`` candidates are held;
reconciliation then walks the whole collected list.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..config import MAX_EVENTS_PER_RUN, RATE_LIMIT_SECONDS
from ..exceptions import RateLimitError, RunInProgressError
from ..models import CandidateEvent, EventRecord, MatchType, RunStats, TrackedSource
from ..services.catalog import (
    create_event,
    ensure_indexes,
    find_or_create_category,
    find_or_create_location,
    find_or_create_organizer,
    get_active_sources,
    get_event_by_id,
    update_event,
)
from ..services.confidence import calculate_confidence
from ..services.extraction import extract_events_from_content
from ..services.fetching import fetch_page_with_fallback
from ..services.matching import find_duplicate_event
from ..services.run_log import cleanup_stuck_runs, start_run
from ..utils.datetime_utils import event_date, get_current_timestamp, parse_event_time
from .bookkeeping import fail_run, finish_run

AGENT_NAME: str = "Extraction Agent"

Collected = List[Tuple[CandidateEvent, TrackedSource]]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

def collect_events(
    sources: Sequence[TrackedSource],
    stats: RunStats,
    max_events: int = MAX_EVENTS_PER_RUN,
    delay_seconds: float = RATE_LIMIT_SECONDS,
) -> Collected:
    """Fetch and extract each source in order until *max_events* are held."""
    collected: Collected = []

    for index, source in enumerate(sources):
        if len(collected) >= max_events:
            logger.info("Reached max events limit (%d)", max_events)
            break
        if index:
            time.sleep(delay_seconds)

        logger.info("Processing source: %s (%s)", source.name, source.events_url)
        try:
            content = fetch_page_with_fallback(source.events_url)
            logger.info("Fetched %d chars", len(content))
            events = extract_events_from_content(content, source.name, source.events_url)
        except RateLimitError as exc:
            message = f"Rate limited while processing {source.name}: {exc}"
            logger.error(message)
            stats.errors.append(message)
            continue
        except Exception as exc:
            message = f"Failed to process {source.name}: {exc}"
            logger.error(message)
            stats.errors.append(message)
            continue

        stats.sources_processed += 1
        for event in events[: max_events - len(collected)]:
            collected.append((event, source))
            stats.events_found += 1

    logger.info("Total events collected: %d", len(collected))
    return collected


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def merge_updates(existing: EventRecord, candidate: CandidateEvent, confidence: int) -> Dict[str, Any]:
    """Fields to overwrite on *existing*; empty candidate values keep the stored ones."""
    return {
        "description": candidate.description or existing.description,
        "image_url": candidate.image_url or existing.image_url,
        "ticket_url": candidate.ticket_url or existing.ticket_url,
        "confidence_score": confidence,
    }


def build_event_document(
    candidate: CandidateEvent,
    source: TrackedSource,
    location_id: str,
    organizer_id: str,
    category_id: Optional[str],
    confidence: int,
) -> Dict[str, Any]:
    return {
        "title": candidate.title,
        "description": candidate.description or "",
        "start_time": candidate.start_time,
        "end_time": candidate.end_time or candidate.start_time,
        "event_date": event_date(candidate.start_time),
        "location_id": location_id,
        "organizer_id": organizer_id,
        "category_id": category_id,
        "image_url": candidate.image_url or "",
        "ticket_url": candidate.ticket_url,
        "detail_url": candidate.detail_url,
        "source_type": source.source_type,
        "source_id": source.id,
        "is_published": True,
        "confidence_score": confidence,
    }


def _apply_exact_match(candidate: CandidateEvent, existing_id: str, stats: RunStats) -> None:
    existing = get_event_by_id(existing_id)
    confidence = calculate_confidence(candidate)

    if existing is None or confidence <= existing.confidence_score:
        logger.info("Duplicate: %s", candidate.title)
        stats.events_duplicate_exact += 1
        return

    if update_event(existing.id, merge_updates(existing, candidate, confidence)):
        logger.info(
            "Updated: %s (confidence %d → %d)", candidate.title, existing.confidence_score, confidence
        )
        stats.events_updated += 1
    else:
        stats.events_failed += 1


def _create_new(candidate: CandidateEvent, source: TrackedSource, stats: RunStats) -> None:
    location_id, location_created = find_or_create_location(
        candidate.location_name or source.name, candidate.location_address
    )
    if location_id is None:
        logger.error("Could not find/create location for: %s", candidate.title)
        stats.events_failed += 1
        return
    if location_created:
        stats.locations_created += 1

    organizer_id, organizer_created = find_or_create_organizer(candidate.organizer_name or source.name)
    if organizer_id is None:
        logger.error("Could not find/create organizer for: %s", candidate.title)
        stats.events_failed += 1
        return
    if organizer_created:
        stats.organizers_created += 1

    category_id = find_or_create_category(candidate.category)
    confidence = calculate_confidence(candidate)

    event_id = create_event(
        build_event_document(candidate, source, location_id, organizer_id, category_id, confidence)
    )
    if event_id is None:
        stats.events_failed += 1
        return
    logger.info("Created: %s", candidate.title)
    stats.events_created += 1


def reconcile_event(candidate: CandidateEvent, source: TrackedSource, stats: RunStats, now: datetime) -> None:
    """Create, update or discard one candidate."""
    if parse_event_time(candidate.start_time) < now:
        logger.info("Skipping past event: %s (%s)", candidate.title, candidate.start_time)
        stats.events_skipped_past += 1
        return

    match = find_duplicate_event(candidate.title, candidate.start_time)
    if match.match_type is MatchType.EXACT:
        _apply_exact_match(candidate, match.existing_id, stats)
    elif match.match_type is MatchType.FUZZY:
        # Near-misses never overwrite a stored record
        logger.info("Fuzzy duplicate: %s", candidate.title)
        stats.events_duplicate_fuzzy += 1
    else:
        _create_new(candidate, source, stats)


def reconcile_events(collected: Collected, stats: RunStats, now: Optional[datetime] = None) -> None:
    now = now or get_current_timestamp()
    for candidate, source in collected:
        try:
            reconcile_event(candidate, source, stats, now)
        except Exception as exc:
            message = f"Failed to process event '{candidate.title}': {exc}"
            logger.error(message)
            stats.errors.append(message)
            stats.events_failed += 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def run(max_events: int = MAX_EVENTS_PER_RUN) -> RunStats:
    """Execute one extraction run over all active sources."""
    started = time.monotonic()
    stats = RunStats()
    run_id: Optional[str] = None

    try:
        cleanup_stuck_runs()
        run_id = start_run(AGENT_NAME)
        ensure_indexes()

        sources = get_active_sources()
        logger.info("Found %d active event sources (max events per run: %d)", len(sources), max_events)
        if not sources:
            logger.info("No active event sources. Activate discovered sources to extract from them.")

        collected = collect_events(sources, stats, max_events=max_events)
        reconcile_events(collected, stats)

        summary = (
            f"Processed {stats.sources_processed} sources, found {stats.events_found} events,"
            f" created {stats.events_created}, updated {stats.events_updated}"
        )
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
    logger.info("=== Extraction Statistics ===")
    logger.info("Sources processed: %d", stats.sources_processed)
    logger.info("Events found: %d", stats.events_found)
    logger.info("Events created: %d", stats.events_created)
    logger.info("Events updated: %d", stats.events_updated)
    logger.info(
        "Duplicates: %d (%d exact, %d fuzzy)",
        stats.events_duplicated,
        stats.events_duplicate_exact,
        stats.events_duplicate_fuzzy,
    )
    logger.info("Past events skipped: %d", stats.events_skipped_past)
    logger.info("Events failed: %d", stats.events_failed)
    logger.info("Locations created: %d", stats.locations_created)
    logger.info("Organizers created: %d", stats.organizers_created)
    logger.info("=============================")

__all__ = [
    "run",
    "collect_events",
    "reconcile_events",
    "reconcile_event",
    "merge_updates",
    "build_event_document",
]
