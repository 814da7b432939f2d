"""
Maintenance tasks for the job store.

This module contains tasks for:
- Reclaiming jobs whose lease expired (worker crash or hang)
- Cleaning completed and failed jobs older than the grace period

Each task is a thin wrapper over a plain function that takes the store or
queue manager explicitly, so the sweeps can also run from a script or a test.
"""

import logging
import threading
from typing import Any

from celery import shared_task

from tweetcast.container import PipelineServices
from tweetcast.core.config import get_settings
from tweetcast.models.enums import JobState
from tweetcast.queue.manager import QueueManager
from tweetcast.queue.store import DEFAULT_CLEAN_LIMIT, JobStore

logger = logging.getLogger(__name__)

_services: PipelineServices | None = None
_services_lock = threading.Lock()


def get_maintenance_services() -> PipelineServices:
    """
    Lazily build the services used by maintenance tasks.

    Built once per Celery worker process, without a worker pool.
    """
    global _services
    with _services_lock:
        if _services is None:
            settings = get_settings()
            if settings.job_store_backend == "memory":
                logger.warning(
                    "Maintenance is running against a process-local job store; "
                    "it cannot see jobs held by other processes"
                )
            _services = PipelineServices.build(settings)
        return _services


def reclaim_expired(store: JobStore) -> dict[str, Any]:
    """
    Return every job with an expired lease to the queue.

    Reclaimed jobs count the lost attempt: they go back to waiting, or fail
    when no attempts remain.

    Args:
        store: Job store to sweep

    Returns:
        Summary with the reclaimed job ids by resulting state
    """
    reclaimed = store.reclaim_expired()

    retried = [s.id for s in reclaimed if not s.state.is_terminal]
    failed = [s.id for s in reclaimed if s.state == JobState.FAILED]

    for snapshot in reclaimed:
        logger.warning(
            f"Reclaimed {snapshot.job_type.value} job {snapshot.id} from an expired lease",
            extra={
                "job_id": snapshot.id,
                "job_type": snapshot.job_type.value,
                "state": snapshot.state.value,
                "attempts_made": snapshot.attempts_made,
            },
        )

    return {
        "reclaimed_count": len(reclaimed),
        "retried": retried,
        "failed": failed,
    }


def clean_finished(
    manager: QueueManager,
    grace_ms: int,
    limit: int = DEFAULT_CLEAN_LIMIT,
) -> dict[str, Any]:
    """
    Clean finished jobs older than ``grace_ms`` for every job type.

    Args:
        manager: Queue manager
        grace_ms: Minimum age of evicted jobs in milliseconds
        limit: Maximum jobs evicted per type and state

    Returns:
        Summary with the number of evicted jobs per job type
    """
    removed: dict[str, int] = {}
    for job_type in manager.registry.job_types():
        removed[job_type.value] = len(manager.clean(job_type, grace_ms, limit))

    total = sum(removed.values())
    logger.info(
        f"Cleaned {total} finished jobs",
        extra={"grace_ms": grace_ms, "removed": removed},
    )
    return {"removed_count": total, "removed": removed}


@shared_task(
    bind=True,
    name="tweetcast.workers.tasks.maintenance.reclaim_expired_leases",
    acks_late=True,
)
def reclaim_expired_leases(self) -> dict[str, Any]:
    """
    Periodic sweep for expired leases.

    Workers reclaim expired leases for their own types as they lease; this
    task covers types whose workers are all gone.
    """
    logger.info("Starting expired lease sweep")
    return reclaim_expired(get_maintenance_services().store)


@shared_task(
    bind=True,
    name="tweetcast.workers.tasks.maintenance.clean_finished_jobs",
    acks_late=True,
)
def clean_finished_jobs(self, grace_ms: int | None = None) -> dict[str, Any]:
    """
    Periodic cleanup of finished jobs.

    Args:
        grace_ms: Minimum age in milliseconds (defaults to settings.clean_grace_ms)
    """
    services = get_maintenance_services()
    if grace_ms is None:
        grace_ms = services.settings.clean_grace_ms
    logger.info(f"Starting finished job cleanup (grace={grace_ms}ms)")
    return clean_finished(services.manager, grace_ms)


__all__ = [
    "clean_finished",
    "clean_finished_jobs",
    "get_maintenance_services",
    "reclaim_expired",
    "reclaim_expired_leases",
]
