"""
Job and queue endpoints.

Producer-facing surface of the queue manager: enqueue a job, look one up,
and read or control the per-type queues.
"""

from fastapi import APIRouter, Query, status

from tweetcast.core.dependencies import AppSettings, Manager
from tweetcast.schemas.job import (
    CleanResponse,
    JobCreate,
    JobEnqueuedResponse,
    JobResponse,
    QueueControlResponse,
    QueueCountsResponse,
    QueueStatsResponse,
)

jobs_router = APIRouter()
queues_router = APIRouter()


@jobs_router.post(
    "/{job_type}",
    response_model=JobEnqueuedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue Job",
    description="Validate a payload and add a job of the given type.",
)
def enqueue_job(
    job_type: str,
    body: JobCreate,
    manager: Manager,
) -> JobEnqueuedResponse:
    """
    Enqueue a job.

    Args:
        job_type: Registered job type (e.g. fetch_tweets)
        body: Payload and optional priority
        manager: Queue manager

    Returns:
        The assigned job id and the normalized payload

    Raises:
        NotFoundError: If the job type is unknown
        ValidationError: If the payload does not match the type's schema
        ConflictError: If the queue manager is shutting down
    """
    handle = manager.enqueue(job_type, body.payload, priority=body.priority)
    return JobEnqueuedResponse.from_handle(handle)


@jobs_router.get(
    "/{job_type}/{job_id}",
    response_model=JobResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Job",
    description="Get the state, progress and result of a job.",
)
def get_job(job_type: str, job_id: str, manager: Manager) -> JobResponse:
    """
    Get a job by type and id.

    Raises:
        NotFoundError: If the type or the job is unknown
    """
    return JobResponse.from_snapshot(manager.get_job(job_type, job_id))


@queues_router.get(
    "/stats",
    response_model=QueueStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Queue Stats",
    description="Per-state job counts for every job type.",
)
def queue_stats(manager: Manager) -> QueueStatsResponse:
    counts = manager.get_all_job_counts()
    return QueueStatsResponse(
        queues=[
            QueueCountsResponse.create(job_type, job_counts, manager.is_paused(job_type))
            for job_type, job_counts in counts.items()
        ]
    )


@queues_router.get(
    "/{job_type}/counts",
    response_model=QueueCountsResponse,
    status_code=status.HTTP_200_OK,
    summary="Queue Counts",
    description="Per-state job counts for one job type.",
)
def queue_counts(job_type: str, manager: Manager) -> QueueCountsResponse:
    config = manager.registry.get(job_type)
    return QueueCountsResponse.create(
        config.job_type,
        manager.get_job_counts(config.job_type),
        manager.is_paused(config.job_type),
    )


@queues_router.post(
    "/{job_type}/pause",
    response_model=QueueControlResponse,
    status_code=status.HTTP_200_OK,
    summary="Pause Queue",
    description="Stop leasing new jobs of a type. Running jobs finish normally.",
)
def pause_queue(job_type: str, manager: Manager) -> QueueControlResponse:
    config = manager.registry.get(job_type)
    manager.pause(config.job_type)
    return QueueControlResponse(job_type=config.job_type, paused=True)


@queues_router.post(
    "/{job_type}/resume",
    response_model=QueueControlResponse,
    status_code=status.HTTP_200_OK,
    summary="Resume Queue",
    description="Resume leasing jobs of a type.",
)
def resume_queue(job_type: str, manager: Manager) -> QueueControlResponse:
    config = manager.registry.get(job_type)
    manager.resume(config.job_type)
    return QueueControlResponse(job_type=config.job_type, paused=False)


@queues_router.delete(
    "/{job_type}/clean",
    response_model=CleanResponse,
    status_code=status.HTTP_200_OK,
    summary="Clean Queue",
    description="Evict completed and failed jobs older than the grace period.",
)
def clean_queue(
    job_type: str,
    manager: Manager,
    settings: AppSettings,
    grace: int | None = Query(
        default=None,
        description="Minimum age in milliseconds (defaults to the maintenance grace)",
    ),
) -> CleanResponse:
    """
    Clean finished jobs of one type.

    Args:
        job_type: Registered job type
        manager: Queue manager
        settings: Application settings
        grace: Minimum age of evicted jobs in milliseconds

    Returns:
        Ids of the evicted jobs

    Raises:
        ValidationError: If grace is negative
    """
    config = manager.registry.get(job_type)
    grace_ms = settings.clean_grace_ms if grace is None else grace
    removed = manager.clean(config.job_type, grace_ms)
    return CleanResponse(job_type=config.job_type, grace_ms=grace_ms, removed=removed)
