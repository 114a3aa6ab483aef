"""Structured event extraction from page content via an OpenAI-compatible LLM.

Flow per source: truncate content → call the model in JSON mode (rate limits
retried with exponential backoff) → repair unescaped quotes → parse →
validate with pydantic. Invalid output re-invokes the model, up to
``MAX_VALIDATION_ATTEMPTS`` times.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List

from pydantic import ValidationError

from ..clients.openai_client import get_openai
from ..config import EXTRACTION_MODEL, TARGET_METRO
from ..exceptions import ExtractionError
from ..models import STANDARD_CATEGORIES, CandidateEvent, ExtractionResponse
from ..utils.llm_parsing import extract_structured_json
from ..utils.retry import retry_with_backoff

# ---------------------------------------------------------------------------
# Local extraction settings (only used by this service)
# ---------------------------------------------------------------------------
MAX_CONTENT_LENGTH: int = 100_000
TRUNCATION_MARKER: str = "\n\n[Content truncated...]"
MAX_VALIDATION_ATTEMPTS: int = 3
VALIDATION_RETRY_DELAY_SECONDS: float = 2.0
EXTRACTION_TEMPERATURE: float = 0.3
EXTRACTION_MAX_TOKENS: int = 16384

logger = logging.getLogger(__name__)

EVENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "start_time": {"type": "string", "description": "ISO 8601 datetime"},
                    "end_time": {"type": "string"},
                    "location_name": {"type": "string"},
                    "location_address": {"type": "string"},
                    "organizer_name": {"type": "string"},
                    "ticket_url": {"type": "string"},
                    "image_url": {"type": "string"},
                    "detail_url": {
                        "type": "string",
                        "description": "The specific URL to this event's detail page (NOT a listing page)",
                    },
                    "category": {
                        "type": "string",
                        "description": "Event category from the standard list",
                        "enum": list(STANDARD_CATEGORIES),
                    },
                },
                "required": ["title", "start_time", "detail_url", "category"],
            },
        }
    },
    "required": ["events"],
}


def build_system_prompt(metro: str = TARGET_METRO) -> str:
    categories = "\n".join(f"- {name}" for name in STANDARD_CATEGORIES)
    return (
        "You are an event extraction assistant. Extract upcoming events from the"
        " provided page content.\n\n"
        "LOCATION FILTER:\n"
        f"- ONLY extract events physically located in {metro} or its province.\n"
        "- Reject events in other cities or countries, and events whose location is unclear.\n\n"
        "CATEGORY (REQUIRED): assign exactly one of:\n"
        f"{categories}\n"
        "Use \"Other\" only if nothing else fits.\n\n"
        "EXTRACTION RULES:\n"
        "- Convert dates to ISO 8601 (YYYY-MM-DDTHH:MM:SS). If a date has no year,"
        " assume the next upcoming occurrence.\n"
        "- If no time is given use 21:00 for evening events and 10:00 for daytime events.\n"
        "- Skip events without a clear date (\"coming soon\", TBA).\n"
        "- image_url and ticket_url must be absolute URLs (http:// or https://).\n"
        "- detail_url MUST be the absolute URL of THIS event's own page, never the"
        " listing page it was found on. Skip events without one."
    )


def build_user_prompt(content: str, source_name: str, source_url: str) -> str:
    return (
        f"Extract all events from this page (source: {source_name}, URL: {source_url}):\n\n"
        f"{content}\n\n"
        "IMPORTANT: respond with valid JSON only. Escape every quotation mark inside"
        ' string values (e.g. "He said \\"hello\\""). Match this schema:\n'
        f"{json.dumps(EVENT_SCHEMA, indent=2)}"
    )


def truncate_content(content: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    if len(content) <= max_length:
        return content
    return content[:max_length] + TRUNCATION_MARKER


def _complete(system_prompt: str, user_prompt: str):
    return get_openai().chat.completions.create(
        model=EXTRACTION_MODEL,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        temperature=EXTRACTION_TEMPERATURE,
        max_tokens=EXTRACTION_MAX_TOKENS,
    )


def parse_extraction_response(raw_text: str) -> List[CandidateEvent]:
    """Repair, parse and validate raw model output.

    Raises :class:`ValueError` (malformed JSON) or
    :class:`pydantic.ValidationError` (wrong shape).
    """
    payload = extract_structured_json(raw_text)
    return ExtractionResponse.model_validate(payload).events


def extract_events_from_content(content: str, source_name: str, source_url: str) -> List[CandidateEvent]:
    """Return the schema-valid events found in *content*.

    Raises
    ------
    ExtractionError
        Output stayed invalid for ``MAX_VALIDATION_ATTEMPTS`` attempts.
    RateLimitError
        The backend kept rate-limiting after every backoff step.
    """
    system_prompt = build_system_prompt()
    user_prompt = build_user_prompt(truncate_content(content), source_name, source_url)

    last_error: Exception | None = None
    for attempt in range(1, MAX_VALIDATION_ATTEMPTS + 1):
        response = retry_with_backoff(lambda: _complete(system_prompt, user_prompt))

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning(
                "LLM response truncated (hit max_tokens). Source: %s, attempt %d/%d",
                source_name,
                attempt,
                MAX_VALIDATION_ATTEMPTS,
            )

        try:
            raw_text = choice.message.content
            if not raw_text:
                raise ValueError("Empty response from LLM")
            events = parse_extraction_response(raw_text)
        except ValidationError as exc:
            logger.error(
                "Schema validation failed for %s (attempt %d/%d): %d error(s)",
                source_name,
                attempt,
                MAX_VALIDATION_ATTEMPTS,
                exc.error_count(),
            )
            last_error = exc
        except ValueError as exc:
            logger.error(
                "JSON parsing failed for %s (attempt %d/%d): %s",
                source_name,
                attempt,
                MAX_VALIDATION_ATTEMPTS,
                exc,
            )
            last_error = exc
        else:
            logger.info("Extracted %d events from %s", len(events), source_name)
            return events

        if attempt < MAX_VALIDATION_ATTEMPTS:
            time.sleep(VALIDATION_RETRY_DELAY_SECONDS)

    raise ExtractionError(
        f"Failed to extract valid events after {MAX_VALIDATION_ATTEMPTS} attempts: {last_error}",
        source_name=source_name,
    )

__all__ = [
    "EVENT_SCHEMA",
    "MAX_CONTENT_LENGTH",
    "TRUNCATION_MARKER",
    "build_system_prompt",
    "build_user_prompt",
    "truncate_content",
    "parse_extraction_response",
    "extract_events_from_content",
]
