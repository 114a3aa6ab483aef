"""Run-log and report plumbing shared by the discovery and extraction workflows."""

from __future__ import annotations

import logging
import time
from typing import Optional

from ..models import RunStats
from ..services.reporting import alert_error, build_report, report_status, send_agent_report
from ..services.run_log import complete_run

logger = logging.getLogger(__name__)

# Report status → run-log status
_RUN_STATUS = {"success": "completed", "partial": "partial", "failed": "failed"}


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def finish_run(agent_name: str, run_id: str, stats: RunStats, started: float, summary: str) -> str:
    """Close the run record, then send the stats report; return the report status.

    The record is closed first so that a failing write leaves the report to
    :func:`fail_run` and exactly one report goes out per run.
    """
    status = report_status(stats.errors)
    complete_run(
        run_id,
        _RUN_STATUS[status],
        stats.counters(),
        summary,
        "; ".join(stats.errors) if stats.errors else None,
    )
    send_agent_report(build_report(agent_name, status, elapsed_ms(started), stats.counters(), stats.errors))
    return status


def fail_run(agent_name: str, run_id: Optional[str], stats: RunStats, started: float, error: BaseException) -> None:
    """Fatal path: record the failure, report it and alert. The caller re-raises."""
    logger.error("Fatal error in %s: %s", agent_name, error)
    stats.errors.append(f"Fatal: {error}")
    if run_id is not None:
        try:
            complete_run(run_id, "failed", stats.counters(), "Agent failed with fatal error", str(error))
        except Exception as exc:
            logger.error("Could not close run %s: %s", run_id, exc)
    send_agent_report(build_report(agent_name, "failed", elapsed_ms(started), stats.counters(), stats.errors))
    alert_error(error, agent_name)

__all__ = ["elapsed_ms", "finish_run", "fail_run"]
