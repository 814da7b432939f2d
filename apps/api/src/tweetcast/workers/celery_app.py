"""
Celery application configuration for Tweetcast maintenance.

Pipeline jobs are executed by the worker pool (see tweetcast.workers.pool),
not by Celery. Celery beat drives the periodic housekeeping of the job
store:
- Reclaiming jobs whose lease expired because a worker process died
- Cleaning completed and failed jobs past the retention grace period
"""

import logging

from celery import Celery

from tweetcast.core.config import get_settings
from tweetcast.core.logging_config import LOG_FORMAT

logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()

# =============================================================================
# Celery Application Configuration
# =============================================================================

celery_app = Celery(
    "tweetcast_workers",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "tweetcast.workers.tasks.maintenance",
    ],
)

# =============================================================================
# Task Serialization Settings
# =============================================================================

celery_app.conf.update(
    # Use JSON for serialization (more secure than pickle)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Timezone configuration
    timezone="UTC",
    enable_utc=True,
)

# =============================================================================
# Task Execution Settings
# =============================================================================

celery_app.conf.update(
    # Acknowledge tasks late (after execution)
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # Maintenance sweeps are short; bound them well below the beat interval
    task_time_limit=120,
    task_soft_time_limit=100,
    task_track_started=True,
)

celery_app.conf.task_routes = {
    "tweetcast.workers.tasks.maintenance.*": {"queue": "maintenance"},
}
celery_app.conf.task_default_queue = "maintenance"

# =============================================================================
# Result Backend Settings
# =============================================================================

celery_app.conf.update(
    # Keep task results for 24 hours
    result_expires=86400,
    result_extended=True,
)

# =============================================================================
# Logging Configuration
# =============================================================================

celery_app.conf.update(
    worker_log_format=LOG_FORMAT,
    worker_task_log_format=(
        "[%(asctime)s: %(levelname)s/%(processName)s] "
        "[%(task_name)s(%(task_id)s)] %(message)s"
    ),
)

# =============================================================================
# Celery Beat Configuration
# =============================================================================

# Reclaim at a third of the lease TTL so a dead worker's jobs are retried
# within roughly one TTL of its last renewal.
RECLAIM_INTERVAL_SECONDS = max(settings.lease_ttl_seconds / 3, 1.0)
CLEAN_INTERVAL_SECONDS = 60 * 60

celery_app.conf.beat_schedule = {
    "reclaim-expired-leases": {
        "task": "tweetcast.workers.tasks.maintenance.reclaim_expired_leases",
        "schedule": RECLAIM_INTERVAL_SECONDS,
    },
    "clean-finished-jobs": {
        "task": "tweetcast.workers.tasks.maintenance.clean_finished_jobs",
        "schedule": CLEAN_INTERVAL_SECONDS,
    },
}


__all__ = [
    "celery_app",
    "RECLAIM_INTERVAL_SECONDS",
    "CLEAN_INTERVAL_SECONDS",
]
