"""Deterministic completeness score for extracted events."""

from __future__ import annotations

from typing import Optional

from ..models import CandidateEvent

# ---------------------------------------------------------------------------
# Signal weights (sum to 100) and minimum lengths
# ---------------------------------------------------------------------------
IMAGE_WEIGHT: int = 20
DESCRIPTION_WEIGHT: int = 20
TICKET_WEIGHT: int = 15
END_TIME_WEIGHT: int = 10
ORGANIZER_WEIGHT: int = 15
ADDRESS_WEIGHT: int = 20

MIN_URL_LENGTH: int = 10
MIN_DESCRIPTION_LENGTH: int = 50
MIN_ORGANIZER_LENGTH: int = 2
MIN_ADDRESS_LENGTH: int = 10


def _longer_than(value: Optional[str], length: int) -> bool:
    return bool(value) and len(value) > length


def calculate_confidence(event: CandidateEvent) -> int:
    """Return a 0-100 score; each populated field adds its weight."""
    score = 0
    if _longer_than(event.image_url, MIN_URL_LENGTH):
        score += IMAGE_WEIGHT
    if _longer_than(event.description, MIN_DESCRIPTION_LENGTH):
        score += DESCRIPTION_WEIGHT
    if _longer_than(event.ticket_url, MIN_URL_LENGTH):
        score += TICKET_WEIGHT
    if event.end_time and event.end_time != event.start_time:
        score += END_TIME_WEIGHT
    if _longer_than(event.organizer_name, MIN_ORGANIZER_LENGTH):
        score += ORGANIZER_WEIGHT
    if _longer_than(event.location_address, MIN_ADDRESS_LENGTH):
        score += ADDRESS_WEIGHT
    return score

__all__ = ["calculate_confidence"]
