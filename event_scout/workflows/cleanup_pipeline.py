"""Catalog maintenance: batch duplicate cleanup and the shared-image report."""

from __future__ import annotations

import logging
from typing import Dict, List

from pymongo.errors import PyMongoError

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..models import DuplicateGroup, EventRecord
from ..services.catalog import delete_events, list_all_events
from ..services.matching import group_duplicates, group_shared_images

logger = logging.getLogger(__name__)


def run(live: bool = False) -> List[DuplicateGroup]:
    """Find duplicate groups; delete the flagged members only when *live*."""
    logger.info("Running duplicate cleanup (%s)…", "LIVE MODE" if live else "DRY RUN")

    records = list_all_events()
    logger.info("Found %d total events", len(records))

    groups = group_duplicates(records)
    if not groups:
        logger.info("No duplicates found")
        return groups

    total = 0
    for group in groups:
        logger.info("'%s' (%s): keep %s, delete %s", group.title[:60], group.event_date, group.keep_id, group.delete_ids)
        total += len(group.delete_ids)
    logger.info("%d duplicate groups, %d events to delete", len(groups), total)

    if not live:
        logger.info("[DRY RUN] No changes made. Run with --live to delete duplicates.")
        return groups

    deleted = 0
    for group in groups:
        try:
            deleted += delete_events(group.delete_ids)
        except PyMongoError as exc:
            logger.error("Failed to delete duplicates of '%s': %s", group.title, exc)
    logger.info("Deleted %d duplicate events", deleted)
    return groups


def find_image_duplicates() -> Dict[str, List[EventRecord]]:
    """Report events that share a cover image. Read-only."""
    logger.info("Finding events with duplicate images…")

    shared = group_shared_images(list_all_events())
    if not shared:
        logger.info("No duplicate images found")
        return shared

    logger.info("%d images shared by multiple events", len(shared))
    for image_url, records in shared.items():
        logger.info("Image: %s", image_url[:80])
        for record in records:
            logger.info("  - [%s] %s (%s)", record.event_date, record.title[:60], record.id)
    return shared

__all__ = ["run", "find_image_duplicates"]
