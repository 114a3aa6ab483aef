"""Source discovery via Tavily web search and rule-based filtering."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..clients.tavily_client import get_tavily_client
from ..config import SEARCH_COUNTRY
from ..models import SourceCandidate
from ..source_rules import (
    AGGREGATOR_RULES,
    BLOCKED_DOMAINS,
    BLOCKED_URL_PATTERNS,
    DEFAULT_SOURCE_PRIORITY,
    EVENT_PAGE_PATTERNS,
    SEARCH_QUERY_TEMPLATES,
    AggregatorRule,
)
from .catalog import slugify

# ---------------------------------------------------------------------------
# Local search settings (only used by this service)
# ---------------------------------------------------------------------------
RESULTS_PER_QUERY: int = 10
SEARCH_DELAY_SECONDS: float = 1.0

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def build_search_queries(metro: str) -> List[str]:
    return [template.format(metro=metro) for template in SEARCH_QUERY_TEMPLATES]


def web_search(query: str, count: int = RESULTS_PER_QUERY, region: str = SEARCH_COUNTRY) -> List[SourceCandidate]:
    """Run one search and map the hits to :class:`SourceCandidate`."""
    response = get_tavily_client().search(
        query=query,
        topic="general",
        max_results=count,
        country=region,
        include_answer=False,
        include_raw_content=False,
    )
    return [
        SourceCandidate(
            url=hit["url"],
            title=hit.get("title") or "",
            description_snippet=hit.get("content") or "",
        )
        for hit in response.get("results", [])
        if hit.get("url")
    ]


def search_event_sources(metro: str) -> Tuple[List[SourceCandidate], int, List[str]]:
    """Run the whole query battery for *metro*.

    Returns the URL-deduplicated union of results (first sighting wins), the
    number of queries that completed and one message per failed query. A
    failing query is logged and skipped.
    """
    queries = build_search_queries(metro)
    results: List[SourceCandidate] = []
    seen_urls: set[str] = set()
    failures: List[str] = []

    for index, query in enumerate(queries):
        try:
            hits = web_search(query)
        except Exception as exc:
            message = f"Search failed for '{query}': {exc}"
            logger.error(message)
            failures.append(message)
            continue
        finally:
            if index < len(queries) - 1:
                time.sleep(SEARCH_DELAY_SECONDS)

        for hit in hits:
            if hit.url not in seen_urls:
                seen_urls.add(hit.url)
                results.append(hit)

    logger.info(
        "Search battery for %s returned %d unique results (%d/%d queries failed)",
        metro,
        len(results),
        len(failures),
        len(queries),
    )
    return results, len(queries) - len(failures), failures


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def hostname_of(url: str) -> str:
    """Lowercased hostname without a leading ``www.`` ("" if unparsable)."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def normalize_url(url: str) -> str:
    """Host (no ``www.``) + path without trailing slash, for tracked-set lookups."""
    host = hostname_of(url)
    if not host:
        return url.lower()
    return host + urlparse(url).path.rstrip("/")


def get_base_url(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return url
    return f"{parsed.scheme}://{parsed.hostname}"


def extract_site_name(url: str) -> str:
    """``https://www.palermo-eventi.it/x`` → ``"Palermo Eventi"``."""
    host = hostname_of(url)
    if not host:
        return "Unknown Source"
    return " ".join(word.capitalize() for word in host.split(".")[0].split("-"))


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def is_blocked_domain(url: str) -> bool:
    host = hostname_of(url)
    if not host:
        return False
    return host in BLOCKED_DOMAINS or any(host.endswith(f".{blocked}") for blocked in BLOCKED_DOMAINS)


def is_blocked_source(url: str) -> bool:
    """Blocked domain (or subdomain) or a non-listing URL pattern."""
    if is_blocked_domain(url):
        return True
    return any(pattern.search(url) for pattern in BLOCKED_URL_PATTERNS)


def match_aggregator(url: str) -> Optional[AggregatorRule]:
    for rule in AGGREGATOR_RULES:
        if rule.pattern.search(url):
            return rule
    return None


def looks_like_event_page(candidate: SourceCandidate) -> bool:
    return any(
        pattern.search(candidate.url) or pattern.search(candidate.title)
        for pattern in EVENT_PAGE_PATTERNS
    )


def classify_source(candidate: SourceCandidate) -> Optional[Tuple[str, int]]:
    """Return ``(name, priority)`` if *candidate* should be tracked, else ``None``.

    Blocklists are checked before the aggregator table, so a blog path on a
    known aggregator is still rejected.
    """
    if is_blocked_source(candidate.url):
        return None
    rule = match_aggregator(candidate.url)
    if rule is not None:
        return rule.name, rule.priority
    if looks_like_event_page(candidate):
        return extract_site_name(candidate.url), DEFAULT_SOURCE_PRIORITY
    return None


def build_source_document(candidate: SourceCandidate, name: str, priority: int, metro: str) -> Dict[str, Any]:
    """New sources start inactive and wait for manual review."""
    return {
        "name": name,
        "slug": slugify(extract_site_name(candidate.url)),
        "base_url": get_base_url(candidate.url),
        "events_url": candidate.url,
        "is_active": False,
        "scrape_priority": priority,
        "metro_area": metro,
        "source_type": "aggregator",
    }

__all__ = [
    "build_search_queries",
    "web_search",
    "search_event_sources",
    "hostname_of",
    "normalize_url",
    "get_base_url",
    "extract_site_name",
    "is_blocked_domain",
    "is_blocked_source",
    "match_aggregator",
    "looks_like_event_page",
    "classify_source",
    "build_source_document",
]
