"""Persistence layer: the MongoDB-backed event catalog.

Collections
-----------
``sources``     tracked listing pages (unique ``base_url`` / ``events_url``)
``events``      catalog events, indexed by ``event_date`` (``YYYY-MM-DD``)
``locations``   venues, unique by exact ``name``
``organizers``  organisers, unique by exact ``name``
``categories``  categories, unique by normalised ``slug``

Every document is keyed by a UUID4 string in ``_id``.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..clients.mongodb_client import get_database
from ..models import EventRecord, TrackedSource
from ..utils.datetime_utils import get_current_timestamp

SOURCES: str = "sources"
EVENTS: str = "events"
LOCATIONS: str = "locations"
ORGANIZERS: str = "organizers"
CATEGORIES: str = "categories"

logger = logging.getLogger(__name__)


def _collection(name: str) -> Collection:
    return get_database()[name]


def new_id() -> str:
    return str(uuid.uuid4())


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def ensure_indexes() -> None:
    """Create the unique indexes the pipeline relies on (idempotent)."""
    _collection(SOURCES).create_index("base_url", unique=True)
    _collection(SOURCES).create_index("events_url", unique=True)
    _collection(EVENTS).create_index([("event_date", ASCENDING)])
    _collection(LOCATIONS).create_index("name", unique=True)
    _collection(ORGANIZERS).create_index("name", unique=True)
    _collection(CATEGORIES).create_index("slug", unique=True)


# ---------------------------------------------------------------------------
# Tracked sources
# ---------------------------------------------------------------------------

def get_tracked_source_urls() -> List[Tuple[str, str]]:
    """Return ``(base_url, events_url)`` for every tracked source."""
    cursor = _collection(SOURCES).find({}, {"base_url": 1, "events_url": 1})
    return [(doc.get("base_url", ""), doc.get("events_url", "")) for doc in cursor]


def insert_source(source: Dict[str, Any]) -> str:
    """Insert a new tracked source.

    Raises :class:`pymongo.errors.DuplicateKeyError` if the URL is already
    tracked.
    """
    doc = {"_id": new_id(), "created_at": get_current_timestamp(), **source}
    _collection(SOURCES).insert_one(doc)
    return doc["_id"]


def get_active_sources() -> List[TrackedSource]:
    """Return active sources, highest scrape priority first."""
    cursor = _collection(SOURCES).find({"is_active": True}).sort("scrape_priority", DESCENDING)
    return [TrackedSource.from_document(doc) for doc in cursor]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def find_event_by_title_on_date(title: str, event_date: str) -> Optional[EventRecord]:
    """Case-insensitive exact title lookup among events on *event_date*."""
    doc = _collection(EVENTS).find_one(
        {
            "event_date": event_date,
            "title": {"$regex": f"^{re.escape(title)}$", "$options": "i"},
        }
    )
    return EventRecord.from_document(doc) if doc else None


def list_events_on_date(event_date: str) -> List[EventRecord]:
    cursor = _collection(EVENTS).find({"event_date": event_date})
    return [EventRecord.from_document(doc) for doc in cursor]


def list_all_events() -> List[EventRecord]:
    cursor = _collection(EVENTS).find({}).sort("created_at", ASCENDING)
    return [EventRecord.from_document(doc) for doc in cursor]


def get_event_by_id(event_id: str) -> Optional[EventRecord]:
    doc = _collection(EVENTS).find_one({"_id": event_id})
    return EventRecord.from_document(doc) if doc else None


def create_event(event: Dict[str, Any]) -> Optional[str]:
    """Insert *event*; return its id, or ``None`` if the write failed."""
    now = get_current_timestamp()
    doc = {"_id": new_id(), "created_at": now, "updated_at": now, **event}
    try:
        _collection(EVENTS).insert_one(doc)
    except PyMongoError as exc:
        logger.error("Failed to create event '%s': %s", event.get("title"), exc)
        return None
    return doc["_id"]


def update_event(event_id: str, updates: Dict[str, Any]) -> bool:
    """Apply *updates* to an event; return ``False`` if the write failed."""
    try:
        result = _collection(EVENTS).update_one(
            {"_id": event_id},
            {"$set": {**updates, "updated_at": get_current_timestamp()}},
        )
    except PyMongoError as exc:
        logger.error("Failed to update event %s: %s", event_id, exc)
        return False
    return result.matched_count == 1


def delete_events(event_ids: Sequence[str]) -> int:
    if not event_ids:
        return 0
    result = _collection(EVENTS).delete_many({"_id": {"$in": list(event_ids)}})
    return result.deleted_count


# ---------------------------------------------------------------------------
# Resolve-or-create lookups
# ---------------------------------------------------------------------------

def _upsert_by(collection: str, key: Dict[str, Any], fields: Dict[str, Any]) -> Tuple[str, bool]:
    """Insert a document for *key* unless one exists; return ``(id, created)``.

    Two concurrent upserts for the same key are settled by the unique index:
    the loser gets a DuplicateKeyError and re-reads the winner's document.
    """
    coll = _collection(collection)
    candidate_id = new_id()
    try:
        result = coll.update_one(
            key,
            {
                "$setOnInsert": {
                    "_id": candidate_id,
                    "created_at": get_current_timestamp(),
                    **fields,
                }
            },
            upsert=True,
        )
        if result.upserted_id is not None:
            return str(result.upserted_id), True
    except DuplicateKeyError:
        pass

    doc = coll.find_one(key, {"_id": 1})
    if doc is None:
        raise PyMongoError(f"{collection} entry for {key} vanished after upsert")
    return str(doc["_id"]), False


def find_or_create_location(name: str, address: Optional[str] = None) -> Tuple[Optional[str], bool]:
    try:
        return _upsert_by(LOCATIONS, {"name": name}, {"address": address or ""})
    except PyMongoError as exc:
        logger.error("Could not find/create location '%s': %s", name, exc)
        return None, False


def find_or_create_organizer(name: str) -> Tuple[Optional[str], bool]:
    try:
        return _upsert_by(ORGANIZERS, {"name": name}, {})
    except PyMongoError as exc:
        logger.error("Could not find/create organizer '%s': %s", name, exc)
        return None, False


def find_or_create_category(name: str) -> Optional[str]:
    slug = slugify(name)
    try:
        category_id, _ = _upsert_by(CATEGORIES, {"slug": slug}, {"name": name})
    except PyMongoError as exc:
        logger.error("Could not find/create category '%s': %s", name, exc)
        return None
    return category_id

__all__ = [
    "ensure_indexes",
    "slugify",
    "get_tracked_source_urls",
    "insert_source",
    "get_active_sources",
    "find_event_by_title_on_date",
    "list_events_on_date",
    "list_all_events",
    "get_event_by_id",
    "create_event",
    "update_event",
    "delete_events",
    "find_or_create_location",
    "find_or_create_organizer",
    "find_or_create_category",
]
