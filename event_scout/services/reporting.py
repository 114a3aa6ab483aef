"""Outbound run reports and error alerts (fire-and-forget webhook)."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Optional, Sequence

from ..clients.http_client import get_session
from ..config import REPORT_WEBHOOK_URL

WEBHOOK_TIMEOUT_SECONDS: float = 10.0
# Fewer errors than this still counts as a partial success
PARTIAL_ERROR_LIMIT: int = 3

logger = logging.getLogger(__name__)


def report_status(errors: Sequence[str]) -> str:
    """``success`` with no errors, ``partial`` with a few, otherwise ``failed``."""
    if not errors:
        return "success"
    if len(errors) < PARTIAL_ERROR_LIMIT:
        return "partial"
    return "failed"


def build_report(
    name: str,
    status: str,
    duration_ms: int,
    stats: Dict[str, Any],
    errors: List[str],
) -> Dict[str, Any]:
    return {
        "name": name,
        "status": status,
        "durationMs": duration_ms,
        "stats": stats,
        "errors": errors,
    }


def _post(payload: Dict[str, Any]) -> None:
    if not REPORT_WEBHOOK_URL:
        return
    response = get_session().post(REPORT_WEBHOOK_URL, json=payload, timeout=WEBHOOK_TIMEOUT_SECONDS)
    response.raise_for_status()


def send_agent_report(report: Dict[str, Any]) -> None:
    """Log *report* and push it to the webhook. Never raises."""
    logger.info(
        "%s finished with status %s in %.1fs (%d error(s))",
        report.get("name"),
        report.get("status"),
        (report.get("durationMs") or 0) / 1000,
        len(report.get("errors") or []),
    )
    try:
        _post({"type": "report", **report})
    except Exception as exc:  # pragma: no cover – network failure
        logger.warning("Failed to send agent report: %s", exc)


def alert_error(error: BaseException, agent_name: str, context: Optional[str] = None) -> None:
    """Push a fatal-error alert. Never raises."""
    payload = {
        "type": "alert",
        "name": agent_name,
        "error": f"{type(error).__name__}: {error}",
        "traceback": "".join(traceback.format_exception(error))[-4000:],
        "context": context,
    }
    try:
        _post(payload)
    except Exception as exc:  # pragma: no cover – network failure
        logger.warning("Failed to send error alert: %s", exc)

__all__ = ["report_status", "build_report", "send_agent_report", "alert_error"]
