"""Domain models used across the project."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Standardised categories for event extraction
STANDARD_CATEGORIES: tuple[str, ...] = (
    "Nightlife",  # Club nights, DJ sets, disco, afterparties
    "Concert",  # Live music performances, bands, artists
    "Party",  # Private parties, themed parties, celebrations
    "Theater",  # Plays, drama, stage performances
    "Comedy",  # Stand-up, cabaret, comedy shows
    "Art",  # Exhibitions, galleries, art shows
    "Food & Wine",  # Tastings, food festivals, culinary events
    "Tour",  # Guided tours, walking tours, excursions
    "Festival",  # Multi-day festivals, street festivals
    "Workshop",  # Classes, seminars, hands-on activities
    "Cultural",  # Museums, heritage, historical events
    "Sports",  # Sporting events, fitness activities
    "Family",  # Kid-friendly events, family activities
    "Networking",  # Business events, meetups, professional gatherings
    "Film",  # Cinema, screenings, film festivals
    "Other",
)
FALLBACK_CATEGORY: str = "Other"

_CATEGORY_LOOKUP: Dict[str, str] = {c.lower(): c for c in STANDARD_CATEGORIES}


@dataclass(slots=True)
class SourceCandidate:
    """A raw web search hit that may become a tracked source."""

    url: str
    title: str = ""
    description_snippet: str = ""


@dataclass(slots=True)
class TrackedSource:
    """An event listing page the catalog knows about."""

    id: str
    name: str
    slug: str
    base_url: str
    events_url: str
    is_active: bool = False
    scrape_priority: int = 30
    metro_area: str = ""
    source_type: str = "aggregator"

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TrackedSource":
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            slug=doc.get("slug", ""),
            base_url=doc.get("base_url", ""),
            events_url=doc.get("events_url", ""),
            is_active=bool(doc.get("is_active", False)),
            scrape_priority=int(doc.get("scrape_priority") or 0),
            metro_area=doc.get("metro_area", ""),
            source_type=doc.get("source_type", "aggregator"),
        )


class CandidateEvent(BaseModel):
    """One event as returned by the extraction backend, after validation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1)
    description: Optional[str] = None
    start_time: str = Field(min_length=1, description="ISO 8601 datetime")
    end_time: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    organizer_name: Optional[str] = None
    ticket_url: Optional[str] = None
    image_url: Optional[str] = None
    detail_url: str = Field(min_length=1)
    category: str = FALLBACK_CATEGORY

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> str:
        if not isinstance(value, str):
            return FALLBACK_CATEGORY
        return _CATEGORY_LOOKUP.get(value.strip().lower(), FALLBACK_CATEGORY)


class ExtractionResponse(BaseModel):
    """Top-level shape the extraction backend must return."""

    events: List[CandidateEvent]


@dataclass(slots=True)
class EventRecord:
    """A stored catalog event."""

    id: str
    title: str
    start_time: str
    event_date: str
    description: str = ""
    end_time: Optional[str] = None
    ticket_url: Optional[str] = None
    image_url: str = ""
    detail_url: str = ""
    organizer_id: Optional[str] = None
    location_id: Optional[str] = None
    category_id: Optional[str] = None
    confidence_score: int = 0
    source_type: str = ""
    is_published: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EventRecord":
        return cls(
            id=str(doc["_id"]),
            title=doc.get("title", ""),
            start_time=doc.get("start_time", ""),
            event_date=doc.get("event_date", ""),
            description=doc.get("description") or "",
            end_time=doc.get("end_time"),
            ticket_url=doc.get("ticket_url"),
            image_url=doc.get("image_url") or "",
            detail_url=doc.get("detail_url") or "",
            organizer_id=doc.get("organizer_id"),
            location_id=doc.get("location_id"),
            category_id=doc.get("category_id"),
            confidence_score=int(doc.get("confidence_score") or 0),
            source_type=doc.get("source_type", ""),
            is_published=bool(doc.get("is_published", True)),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class MatchType(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class DuplicateMatch:
    """Result of checking a candidate against the catalog."""

    is_duplicate: bool
    existing_id: Optional[str] = None
    match_type: MatchType = MatchType.NONE

    @classmethod
    def none(cls) -> "DuplicateMatch":
        return cls(is_duplicate=False)


@dataclass(slots=True)
class DuplicateGroup:
    """Same-day records judged to describe one event."""

    event_date: str
    events: List[EventRecord]
    keep_id: str
    delete_ids: List[str]

    @property
    def title(self) -> str:
        return self.events[0].title if self.events else ""


@dataclass(slots=True)
class RunStats:
    """Counters accumulated over one discovery or extraction run."""

    # discovery
    searches_performed: int = 0
    searches_failed: int = 0
    results_found: int = 0
    new_sources_added: int = 0
    duplicates_skipped: int = 0
    blocked_skipped: int = 0
    # extraction
    sources_processed: int = 0
    events_found: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_duplicate_exact: int = 0
    events_duplicate_fuzzy: int = 0
    events_skipped_past: int = 0
    events_failed: int = 0
    locations_created: int = 0
    organizers_created: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def events_duplicated(self) -> int:
        return self.events_duplicate_exact + self.events_duplicate_fuzzy

    def counters(self) -> Dict[str, int]:
        """Return every counter (without the error list)."""
        data = asdict(self)
        data.pop("errors")
        return data


__all__ = [
    "STANDARD_CATEGORIES",
    "FALLBACK_CATEGORY",
    "SourceCandidate",
    "TrackedSource",
    "CandidateEvent",
    "ExtractionResponse",
    "EventRecord",
    "MatchType",
    "DuplicateMatch",
    "DuplicateGroup",
    "RunStats",
]
