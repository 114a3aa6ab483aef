"""Duplicate detection by title on the same calendar day.

Two passes against the catalog: a case-insensitive exact title lookup, then
a fuzzy comparison against every event stored for that day. Events on
different UTC days are never compared.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from ..models import DuplicateGroup, DuplicateMatch, EventRecord, MatchType
from ..utils.datetime_utils import event_date
from .catalog import find_event_by_title_on_date, list_events_on_date

# ---------------------------------------------------------------------------
# Local fuzzy-matching thresholds
# ---------------------------------------------------------------------------
MAX_EDIT_DISTANCE: int = 5
EDIT_DISTANCE_RATIO: float = 0.2
# Batch grouping only: long titles sharing this many leading characters
SHARED_PREFIX_LENGTH: int = 30

# Anything that is neither a letter/digit nor whitespace (underscore included)
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

logger = logging.getLogger(__name__)


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation (Unicode-aware) and collapse whitespace."""
    lowered = _PUNCTUATION.sub("", title.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def edit_distance_threshold(norm_a: str, norm_b: str) -> int:
    """Allowed edits: 20% of the shorter title, capped at ``MAX_EDIT_DISTANCE``."""
    shorter = min(len(norm_a), len(norm_b))
    return min(MAX_EDIT_DISTANCE, int(shorter * EDIT_DISTANCE_RATIO))


def titles_are_similar(title_a: str, title_b: str) -> bool:
    """Return ``True`` if two titles plausibly name the same event."""
    norm_a = normalize_title(title_a)
    norm_b = normalize_title(title_b)

    if norm_a == norm_b:
        return True

    # "Event Name" vs "Event Name - Venue"
    if norm_a and norm_b and (norm_a in norm_b or norm_b in norm_a):
        return True

    threshold = edit_distance_threshold(norm_a, norm_b)
    return Levenshtein.distance(norm_a, norm_b, score_cutoff=threshold) <= threshold


def titles_share_prefix(title_a: str, title_b: str, length: int = SHARED_PREFIX_LENGTH) -> bool:
    """Both normalised titles are at least *length* long and start the same.

    Catches "Series: Part X" variants whose tails differ too much for the
    edit-distance rule.
    """
    norm_a = normalize_title(title_a)
    norm_b = normalize_title(title_b)
    return min(len(norm_a), len(norm_b)) >= length and norm_a[:length] == norm_b[:length]


def titles_are_batch_duplicates(title_a: str, title_b: str) -> bool:
    """Looser predicate used when grouping the stored catalog."""
    return titles_are_similar(title_a, title_b) or titles_share_prefix(title_a, title_b)


def find_similar(title: str, records: Iterable[EventRecord]) -> Optional[EventRecord]:
    """Return the first record whose title is similar to *title*."""
    for record in records:
        if titles_are_similar(title, record.title):
            return record
    return None


def find_duplicate_event(title: str, start_time: str) -> DuplicateMatch:
    """Check *title* on the day of *start_time* against the catalog."""
    day = event_date(start_time)

    existing = find_event_by_title_on_date(title, day)
    if existing is not None:
        logger.debug("Exact duplicate for '%s' on %s: %s", title, day, existing.id)
        return DuplicateMatch(True, existing.id, MatchType.EXACT)

    similar = find_similar(title, list_events_on_date(day))
    if similar is not None:
        logger.debug("Fuzzy duplicate for '%s' on %s: '%s'", title, day, similar.title)
        return DuplicateMatch(True, similar.id, MatchType.FUZZY)

    return DuplicateMatch.none()


# ---------------------------------------------------------------------------
# Batch grouping (maintenance)
# ---------------------------------------------------------------------------

def _rank_key(record: EventRecord):
    created = record.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (
        -(record.confidence_score or 0),
        0 if record.image_url else 1,
        created is None,
        created or _EPOCH,
    )


def _cluster(records: Sequence[EventRecord]) -> List[List[EventRecord]]:
    # Union-find: any pairwise match joins two clusters
    parent = list(range(len(records)))

    def root(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(records)):
        for j in range(i + 1, len(records)):
            if root(i) != root(j) and titles_are_batch_duplicates(records[i].title, records[j].title):
                parent[root(j)] = root(i)

    clusters: Dict[int, List[EventRecord]] = defaultdict(list)
    for i, record in enumerate(records):
        clusters[root(i)].append(record)
    return [members for members in clusters.values() if len(members) > 1]


def group_duplicates(records: Iterable[EventRecord]) -> List[DuplicateGroup]:
    """Group same-day records by transitive title similarity.

    Pairs are matched with :func:`titles_are_batch_duplicates`, which adds
    the shared-prefix rule to the online comparison.

    Within each group members are ranked by confidence (high first), then
    having a cover image, then creation time (oldest first). The top member
    is kept; the rest are flagged for deletion.
    """
    by_date: Dict[str, List[EventRecord]] = defaultdict(list)
    for record in records:
        by_date[record.event_date].append(record)

    groups: List[DuplicateGroup] = []
    for day, day_records in by_date.items():
        if len(day_records) < 2:
            continue
        for members in _cluster(day_records):
            ranked = sorted(members, key=_rank_key)
            groups.append(
                DuplicateGroup(
                    event_date=day,
                    events=ranked,
                    keep_id=ranked[0].id,
                    delete_ids=[r.id for r in ranked[1:]],
                )
            )
    return groups

def group_shared_images(records: Iterable[EventRecord]) -> Dict[str, List[EventRecord]]:
    """Map each cover image used by more than one record to those records."""
    by_image: Dict[str, List[EventRecord]] = defaultdict(list)
    for record in records:
        if record.image_url:
            by_image[record.image_url].append(record)
    return {url: members for url, members in by_image.items() if len(members) > 1}

__all__ = [
    "MAX_EDIT_DISTANCE",
    "normalize_title",
    "edit_distance_threshold",
    "titles_are_similar",
    "titles_share_prefix",
    "titles_are_batch_duplicates",
    "find_similar",
    "find_duplicate_event",
    "group_duplicates",
    "group_shared_images",
]
