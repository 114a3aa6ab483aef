"""Centralised configuration for event_scout.

Environment variables are loaded once and all related constants are
grouped by service for easier maintenance.
"""

from __future__ import annotations

import os
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load environment variables from `.env` (if present)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Core credentials (from environment)
# ---------------------------------------------------------------------------
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
TAVILY_API_KEY: str | None = os.getenv("TAVILY_API_KEY")
MONGODB_URI: str | None = os.getenv("MONGODB_URI")
REPORT_WEBHOOK_URL: str | None = os.getenv("REPORT_WEBHOOK_URL")
FLARESOLVERR_URL: str | None = os.getenv("FLARESOLVERR_URL")

# ---------------------------------------------------------------------------
# Cross-cutting pipeline settings
# (referenced in more than one component)
# ---------------------------------------------------------------------------
TARGET_METRO: str = os.getenv("TARGET_METRO", "Palermo")
SEARCH_COUNTRY: str = os.getenv("SEARCH_COUNTRY", "italy")
EXTRACTION_MODEL: str = os.getenv("EXTRACTION_MODEL", "google/gemini-2.0-flash-001")
MAX_EVENTS_PER_RUN: int = int(os.getenv("MAX_EVENTS_PER_RUN", "100"))
# Pause between sources; keeps us under the extraction backend's req/min ceiling
RATE_LIMIT_SECONDS: float = float(os.getenv("RATE_LIMIT_SECONDS", "3"))

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "event_scout")
STUCK_RUN_MINUTES: int = int(os.getenv("STUCK_RUN_MINUTES", "30"))

# ---------------------------------------------------------------------------
# Re-exported names
# ---------------------------------------------------------------------------
__all__ = [
    # credentials
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "TAVILY_API_KEY",
    "MONGODB_URI",
    "REPORT_WEBHOOK_URL",
    "FLARESOLVERR_URL",
    # shared
    "TARGET_METRO",
    "SEARCH_COUNTRY",
    "EXTRACTION_MODEL",
    "MAX_EVENTS_PER_RUN",
    "RATE_LIMIT_SECONDS",
    # storage
    "MONGODB_DATABASE",
    "STUCK_RUN_MINUTES",
]
