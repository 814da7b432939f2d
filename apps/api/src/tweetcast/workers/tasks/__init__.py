"""
Celery tasks for Tweetcast.

Maintenance Tasks:
- reclaim_expired_leases: Return jobs held by dead workers to their queues
- clean_finished_jobs: Evict old completed and failed jobs
"""

from tweetcast.workers.tasks.maintenance import (
    clean_finished,
    clean_finished_jobs,
    reclaim_expired,
    reclaim_expired_leases,
)

__all__ = [
    "clean_finished",
    "clean_finished_jobs",
    "reclaim_expired",
    "reclaim_expired_leases",
]
