"""Shared text helpers: LLM response cleanup and HTML-to-markdown conversion."""

from __future__ import annotations

import re
from typing import Final
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from markdownify import markdownify as md

# Elements that never carry listing content
_NOISE_TAGS: Final[tuple[str, ...]] = ("script", "style", "noscript", "svg", "iframe", "template")

# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def strip_think_blocks(text: str) -> str:
    """Extract content after the closing </think> tag from an LLM response.

    Handles missing tags and safely removes JSON code fences if present.
    """
    if not text:
        return text.strip()

    marker: Final[str] = "</think>"
    idx: int = text.rfind(marker)

    # Fallback to full text if marker is missing
    after: str = text if idx == -1 else text[idx + len(marker) :]

    cleaned: str = after.strip()

    # Remove JSON code fences if present
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :].strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:].strip()
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3].strip()

    return cleaned


def html_to_markdown(html: str, base_url: str = "") -> str:
    """Convert a listing page to compact markdown for the extraction prompt.

    Links and image sources are made absolute against *base_url* so per-event
    detail pages and cover images survive the conversion.
    """
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(list(_NOISE_TAGS)):
        tag.decompose()

    if base_url:
        for tag in soup.find_all(href=True):
            tag["href"] = urljoin(base_url, tag["href"])
        for tag in soup.find_all(src=True):
            tag["src"] = urljoin(base_url, tag["src"])

    body = soup.body or soup
    markdown = md(str(body), heading_style="ATX", bullets="-")

    lines = [line.strip() for line in markdown.split("\n")]
    markdown = "\n".join(line for line in lines if line)
    return re.sub(r"[ \t]{2,}", " ", markdown)

__all__ = ["strip_think_blocks", "html_to_markdown"]
