"""Utilities for parsing structured outputs returned by LLM calls.

Two pieces live here: `repair_unescaped_quotes`, a single-pass scanner for
the most common JSON-mode failure (bare `"` inside a string value), and
`extract_structured_json`, which locates and parses the JSON payload in a
response that may carry fences or surrounding prose.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict

from .text_cleaning import strip_think_blocks

__all__ = ["repair_unescaped_quotes", "extract_structured_json"]

# A quote followed by optional whitespace and one of these closes a value
_VALUE_TERMINATOR = re.compile(r"\s*[,}\]]")
# Property-name quote followed by a colon and then a string value
_STRING_VALUE_START = re.compile(r'"\s*:\s*"')


def repair_unescaped_quotes(text: str) -> str:
    """Escape interior quotes inside JSON string property values.

    Turns ``{"title": "Film "Title" Night"}`` into
    ``{"title": "Film \\"Title\\" Night"}``.

    Inside a property's string value, a ``"`` counts as the closing quote only
    when the next non-whitespace character is ``,``, ``}`` or ``]``; every
    other ``"`` is escaped. Existing escape sequences are copied verbatim.
    Everything outside property string values is copied unchanged.
    """
    out: list[str] = []
    i = 0
    n = len(text)

    while i < n:
        opener = _STRING_VALUE_START.match(text, i) if text[i] == '"' else None
        if opener is None:
            out.append(text[i])
            i += 1
            continue

        # Copy `"<ws>:<ws>"` through the value's opening quote
        out.append(opener.group(0))
        i = opener.end()

        while i < n:
            char = text[i]
            if char == "\\":
                out.append(text[i : i + 2])
                i += 2
            elif char == '"':
                if _VALUE_TERMINATOR.match(text, i + 1):
                    out.append(char)
                    i += 1
                    break
                out.append('\\"')
                i += 1
            else:
                out.append(char)
                i += 1

    return "".join(out)


def _as_payload(parsed: Any) -> Dict[str, Any]:
    # A bare array is the value of the `events` field
    if isinstance(parsed, list):
        return {"events": parsed}
    return parsed


def extract_structured_json(response_text: str) -> Dict[str, Any]:
    """Robustly extract JSON from an LLM response.

    Parameters
    ----------
    response_text
        The raw message content returned by the extraction backend.

    Returns
    -------
    dict[str, Any]
        The parsed JSON object.  When the top-level parsed value is a list
        (i.e. the LLM directly returned the value of an *array* field), it
        is wrapped into ``{"events": <list>}`` so that downstream code can
        always rely on accessing the ``"events"`` key.

    Raises
    ------
    ValueError
        If no valid JSON snippet can be located in *response_text*.
    """

    cleaned: str = repair_unescaped_quotes(strip_think_blocks(response_text).strip())

    # 1. Try to parse the whole string first (fast path)
    try:
        return _as_payload(json.loads(cleaned))
    except json.JSONDecodeError:
        pass

    # 2. Search for fenced JSON block, with or without explicit `json` label
    fenced = re.search(
        r"```(?:json)?\s*([\[{].*?[\]}])\s*```",
        cleaned,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if fenced:
        snippet = fenced.group(1).strip()
        try:
            return _as_payload(json.loads(snippet))
        except json.JSONDecodeError:
            cleaned = snippet  # Narrow search space.

    # 3. Decode from the first { or [ and ignore any trailing prose
    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        raise ValueError("Could not locate JSON in extraction response")

    try:
        parsed, _ = json.JSONDecoder().raw_decode(cleaned[min(starts):])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not parse JSON in extraction response: {exc}") from exc
    return _as_payload(parsed)
