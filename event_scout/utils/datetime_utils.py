"""Utility functions for working with dates and times."""

from datetime import datetime, timezone

__all__ = [
    "get_current_timestamp",
    "parse_event_time",
    "event_date",
]

def get_current_timestamp() -> datetime:
    """Return the current UTC datetime with micro-second precision.

    This object can be stored directly in MongoDB where it will be written as
    a BSON Date.
    """
    return datetime.now(tz=timezone.utc)


def parse_event_time(value: str) -> datetime:
    """Parse an ISO 8601 event timestamp into an aware UTC datetime.

    Timestamps without an offset are taken to be UTC. A trailing ``Z`` is
    accepted. Raises :class:`ValueError` for anything else.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def event_date(value: str) -> str:
    """Return the UTC calendar day (``YYYY-MM-DD``) of an event timestamp."""
    return parse_event_time(value).date().isoformat()
