"""
Queue manager: the producer-facing API of the job pipeline.

Validates payloads against the registry, enqueues jobs, and exposes
introspection and admin operations (counts, pause/resume, clean, lookup).
``close_all`` performs the orderly shutdown of workers and store.
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pydantic

from tweetcast.core.exceptions import ConflictError, NotFoundError, ValidationError
from tweetcast.models.enums import JobType
from tweetcast.queue.registry import PipelineRegistry
from tweetcast.queue.store import (
    DEFAULT_CLEAN_LIMIT,
    JobCounts,
    JobSnapshot,
    JobStore,
    NewJob,
)

if TYPE_CHECKING:
    from tweetcast.workers.pool import WorkerPool

logger = logging.getLogger(__name__)

# Priorities are stored in a signed 64-bit column
MIN_PRIORITY = -(2**63)
MAX_PRIORITY = 2**63 - 1


@dataclass(frozen=True)
class JobHandle:
    """What a producer gets back from enqueue."""

    id: str
    job_type: JobType
    priority: int
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "job_type": self.job_type.value,
            "priority": self.priority,
            "data": self.payload,
        }


def _format_validation_errors(exc: pydantic.ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": ".".join(str(part) for part in error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


class QueueManager:
    """
    Producer-facing queue API.

    Example:
        ```python
        manager = QueueManager(store, PIPELINE_REGISTRY)
        handle = manager.enqueue(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(podcast.id), "source_type": "username",
             "source_value": "alice"},
            priority=JobPriority.HIGH,
        )
        snapshot = manager.get_job(JobType.FETCH_TWEETS, handle.id)
        ```
    """

    def __init__(self, store: JobStore, registry: PipelineRegistry) -> None:
        self._store = store
        self._registry = registry
        self._workers: "WorkerPool | None" = None
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def registry(self) -> PipelineRegistry:
        return self._registry

    @property
    def is_closed(self) -> bool:
        return self._closed

    def bind_workers(self, pool: "WorkerPool") -> None:
        """Attach the worker pool so close_all can drain it."""
        self._workers = pool

    def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        priority: int | None = None,
    ) -> JobHandle:
        """
        Validate and enqueue a job.

        Args:
            job_type: Registered job type
            payload: Type-specific payload (see tweetcast.schemas.payloads)
            priority: Lease priority; the type's default when omitted

        Returns:
            JobHandle with the assigned id and the normalized payload

        Raises:
            NotFoundError: If the job type is unknown
            ValidationError: If the payload or priority is invalid
            ConflictError: If the manager has been closed
        """
        config = self._registry.get(job_type)
        if self._closed:
            raise ConflictError(
                "Queue manager is closed and no longer accepts jobs",
                resource_type="Queue",
            )

        if priority is None:
            priority = int(config.default_priority)
        elif isinstance(priority, bool) or not isinstance(priority, int):
            raise ValidationError("Priority must be an integer", field="priority")
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise ValidationError(
                f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}",
                field="priority",
            )

        try:
            model = config.payload_model.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid payload for {config.job_type.value}",
                field="payload",
                details={"errors": _format_validation_errors(e)},
            ) from e

        normalized = model.model_dump(mode="json", exclude_none=True)
        job = NewJob(
            id=str(uuid4()),
            job_type=config.job_type,
            priority=priority,
            payload=normalized,
            max_attempts=config.retry.max_attempts,
            backoff_type=config.retry.backoff,
            backoff_delay_ms=config.retry.base_delay_ms,
            keep_completed=config.retention.keep_completed,
            keep_failed=config.retention.keep_failed,
        )
        self._store.add(job)

        logger.info(
            f"Enqueued {config.job_type.value} job {job.id}",
            extra={
                "job_id": job.id,
                "job_type": config.job_type.value,
                "priority": priority,
                "podcast_id": normalized.get("podcast_id"),
            },
        )

        return JobHandle(
            id=job.id,
            job_type=config.job_type,
            priority=priority,
            payload=normalized,
        )

    def get_job(self, job_type: JobType | str, job_id: str) -> JobSnapshot:
        """
        Look up a job.

        Raises:
            NotFoundError: If the type or the id is unknown
        """
        config = self._registry.get(job_type)
        snapshot = self._store.get(config.job_type, job_id)
        if snapshot is None:
            raise NotFoundError(resource_type="Job", resource_id=job_id)
        return snapshot

    def get_job_counts(self, job_type: JobType | str) -> JobCounts:
        config = self._registry.get(job_type)
        return self._store.counts(config.job_type)

    def get_all_job_counts(self) -> dict[JobType, JobCounts]:
        return {jt: self._store.counts(jt) for jt in self._registry.job_types()}

    def pause(self, job_type: JobType | str) -> None:
        """Stop new leases for a type. In-flight jobs keep running."""
        config = self._registry.get(job_type)
        self._store.pause(config.job_type)
        logger.info(f"Paused queue {config.job_type.value}")

    def resume(self, job_type: JobType | str) -> None:
        config = self._registry.get(job_type)
        self._store.resume(config.job_type)
        logger.info(f"Resumed queue {config.job_type.value}")

    def is_paused(self, job_type: JobType | str) -> bool:
        config = self._registry.get(job_type)
        return self._store.is_paused(config.job_type)

    def clean(
        self,
        job_type: JobType | str,
        grace_ms: int,
        limit: int = DEFAULT_CLEAN_LIMIT,
    ) -> list[str]:
        """
        Evict terminal jobs older than the grace period.

        Returns:
            Ids of the evicted jobs
        """
        config = self._registry.get(job_type)
        if grace_ms < 0:
            raise ValidationError("Grace period must not be negative", field="grace")
        removed = self._store.clean(config.job_type, grace_ms, limit)
        logger.info(
            f"Cleaned {len(removed)} jobs from {config.job_type.value}",
            extra={"job_type": config.job_type.value, "grace_ms": grace_ms},
        )
        return removed

    def close_all(self, timeout: float = 30.0) -> bool:
        """
        Orderly shutdown: refuse new jobs, stop leasing, drain, close store.

        Jobs still running after ``timeout`` keep their lease and are
        recovered by lease expiry once the process is gone.

        Returns:
            True if every in-flight job finished within the timeout
        """
        with self._close_lock:
            if self._closed:
                return True
            self._closed = True

        drained = True
        if self._workers is not None:
            drained = self._workers.close(timeout)
        self._store.close()

        logger.info(
            "Queue manager closed",
            extra={"drained": drained, "timeout_seconds": timeout},
        )
        return drained
