"""Page fetching: plain HTTP first, FlareSolverr when the site blocks us.

To run FlareSolverr locally::

    docker run -d --name=flaresolverr -p 8191:8191 ghcr.io/flaresolverr/flaresolverr:latest

and set ``FLARESOLVERR_URL=http://localhost:8191/v1``.
"""

from __future__ import annotations

import logging

import requests

from ..clients.http_client import get_session
from ..config import FLARESOLVERR_URL
from ..utils.retry import is_retryable_error, with_retry
from ..utils.text_cleaning import html_to_markdown

# ---------------------------------------------------------------------------
# Local fetch settings
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT_SECONDS: float = 30.0
FLARESOLVERR_MAX_TIMEOUT_MS: int = 60000
BLOCKED_STATUS_CODES: frozenset[int] = frozenset({403, 429, 503})
MIN_CONTENT_LENGTH: int = 500
CHALLENGE_MARKERS: tuple[str, ...] = (
    "cf-browser-verification",
    "challenge-platform",
    "Just a moment...",
    "Attention Required! | Cloudflare",
)

# Retry once on transient network failures, same delay both times
SOURCE_RETRY_ATTEMPTS: int = 2
SOURCE_RETRY_DELAY_SECONDS: float = 5.0

logger = logging.getLogger(__name__)


class BlockedPageError(RuntimeError):
    """The site answered with an anti-bot wall instead of content."""


def _looks_blocked(response: requests.Response) -> bool:
    if response.status_code in BLOCKED_STATUS_CODES:
        return True
    body = response.text or ""
    return len(body) < MIN_CONTENT_LENGTH or any(marker in body for marker in CHALLENGE_MARKERS)


def fetch_html(url: str) -> str:
    """Plain GET. Raises :class:`BlockedPageError` on an anti-bot response."""
    response = get_session().get(url, timeout=REQUEST_TIMEOUT_SECONDS)
    if _looks_blocked(response):
        raise BlockedPageError(f"{url} looks blocked (HTTP {response.status_code})")
    response.raise_for_status()
    return response.text


def fetch_with_flaresolverr(url: str) -> str:
    """Fetch *url* through FlareSolverr and return the rendered HTML."""
    if not FLARESOLVERR_URL:
        raise EnvironmentError("FLARESOLVERR_URL is not set in environment variables")

    logger.info("Using FlareSolverr for: %s", url)
    response = get_session().post(
        FLARESOLVERR_URL,
        json={"cmd": "request.get", "url": url, "maxTimeout": FLARESOLVERR_MAX_TIMEOUT_MS},
        timeout=FLARESOLVERR_MAX_TIMEOUT_MS / 1000 + 10,
    )
    if response.status_code != 200:
        raise RuntimeError(f"FlareSolverr request failed: {response.status_code}")

    data = response.json()
    solution = data.get("solution")
    if data.get("status") != "ok" or not solution:
        raise RuntimeError(f"FlareSolverr failed: {data.get('message')}")
    return solution.get("response", "")


def _fetch_once(url: str) -> str:
    try:
        html = fetch_html(url)
    except BlockedPageError as exc:
        if not FLARESOLVERR_URL:
            raise
        logger.warning("%s – falling back to FlareSolverr", exc)
        html = fetch_with_flaresolverr(url)
    return html_to_markdown(html, base_url=url)


def fetch_page_with_fallback(url: str) -> str:
    """Return the page at *url* as LLM-friendly markdown."""
    return with_retry(
        lambda: _fetch_once(url),
        max_attempts=SOURCE_RETRY_ATTEMPTS,
        delay_seconds=SOURCE_RETRY_DELAY_SECONDS,
        backoff_multiplier=1,
        should_retry=is_retryable_error,
    )

__all__ = [
    "BlockedPageError",
    "fetch_html",
    "fetch_with_flaresolverr",
    "fetch_page_with_fallback",
]
