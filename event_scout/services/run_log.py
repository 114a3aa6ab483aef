"""Run bookkeeping in the ``agent_runs`` collection.

Each discovery/extraction invocation is bracketed by :func:`start_run` and
:func:`complete_run`. A run left ``running`` by a crashed process is
reclaimed by :func:`cleanup_stuck_runs` once it is older than the stale
threshold; until then it blocks new runs of the same agent.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from ..clients.mongodb_client import get_database
from ..config import STUCK_RUN_MINUTES
from ..exceptions import RunInProgressError
from ..utils.datetime_utils import get_current_timestamp

RUNS: str = "agent_runs"

logger = logging.getLogger(__name__)


def _runs() -> Collection:
    return get_database()[RUNS]


def cleanup_stuck_runs(max_age_minutes: int = STUCK_RUN_MINUTES) -> int:
    """Mark ``running`` runs older than *max_age_minutes* as failed."""
    cutoff = get_current_timestamp() - timedelta(minutes=max_age_minutes)
    result = _runs().update_many(
        {"status": "running", "started_at": {"$lt": cutoff}},
        {
            "$set": {
                "status": "failed",
                "completed_at": get_current_timestamp(),
                "error_message": f"Run abandoned (still running after {max_age_minutes} minutes)",
            }
        },
    )
    if result.modified_count:
        logger.warning("Cleaned up %d stuck agent runs", result.modified_count)
    return result.modified_count


def ensure_run_index() -> None:
    """At most one ``running`` record per agent, enforced by the store."""
    _runs().create_index(
        "agent_name",
        name="one_running_run_per_agent",
        unique=True,
        partialFilterExpression={"status": "running"},
    )


def start_run(agent_name: str) -> str:
    """Record a new ``running`` run and return its id.

    Raises :class:`RunInProgressError` if another run of *agent_name* is
    still active. The check and the insert are one write: the partial unique
    index rejects a second ``running`` record for the same agent.
    """
    ensure_run_index()

    run_id = str(uuid.uuid4())
    try:
        _runs().insert_one(
            {
                "_id": run_id,
                "agent_name": agent_name,
                "status": "running",
                "started_at": get_current_timestamp(),
            }
        )
    except DuplicateKeyError as exc:
        raise RunInProgressError(f"{agent_name} run is still in progress") from exc
    logger.info("Started %s run %s", agent_name, run_id)
    return run_id


def complete_run(
    run_id: str,
    status: str,
    stats: Dict[str, Any],
    summary: str,
    error_message: Optional[str] = None,
) -> None:
    _runs().update_one(
        {"_id": run_id},
        {
            "$set": {
                "status": status,
                "completed_at": get_current_timestamp(),
                "stats": stats,
                "summary": summary,
                "error_message": error_message,
            }
        },
    )

__all__ = ["cleanup_stuck_runs", "ensure_run_index", "start_run", "complete_run"]
