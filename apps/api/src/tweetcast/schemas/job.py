"""
Pydantic schemas for the job and queue endpoints.

Defines request and response schemas for enqueueing jobs, inspecting a
single job and reading per-type queue counts.
"""

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, StrictInt, computed_field

from tweetcast.models.enums import JobState, JobType

if TYPE_CHECKING:
    from tweetcast.queue.manager import JobHandle
    from tweetcast.queue.store import JobCounts, JobSnapshot


class JobCreate(BaseModel):
    """
    Schema for enqueueing a job.

    The payload is validated against the job type's payload model by the
    queue manager, so it is accepted here as an opaque object.

    Attributes:
        payload: Type-specific job payload
        priority: Lease priority (higher runs first); type default if omitted
    """

    payload: dict[str, Any] = Field(description="Type-specific job payload")
    priority: StrictInt | None = Field(
        default=None,
        description="Lease priority, higher runs first",
    )


class JobEnqueuedResponse(BaseModel):
    """
    Response schema for an accepted job.

    Attributes:
        job_id: Assigned job identifier
        job_type: Queue the job was added to
        status: Always "queued"
        data: The normalized payload as stored
    """

    job_id: str = Field(description="Assigned job identifier")
    job_type: JobType = Field(description="Queue the job was added to")
    priority: int = Field(description="Effective lease priority")
    status: str = Field(default="queued", description="Enqueue status")
    data: dict[str, Any] = Field(description="Normalized payload")

    @classmethod
    def from_handle(cls, handle: "JobHandle") -> "JobEnqueuedResponse":
        return cls(
            job_id=handle.id,
            job_type=handle.job_type,
            priority=handle.priority,
            data=handle.payload,
        )


class JobResponse(BaseModel):
    """
    Schema for job status responses.

    Timestamps are epoch milliseconds.
    """

    job_id: str = Field(description="Job identifier")
    job_type: JobType = Field(description="Queue the job belongs to")
    state: JobState = Field(description="Lifecycle state")
    priority: int = Field(description="Lease priority")
    progress: int = Field(ge=0, le=100, description="Progress of the current attempt")
    data: dict[str, Any] = Field(description="Job payload")
    return_value: dict[str, Any] | None = Field(
        default=None,
        description="Stage result for completed jobs",
    )
    failed_reason: str | None = Field(
        default=None,
        description="Most recent failure message",
    )
    attempts_made: int = Field(ge=0, description="Attempts started so far")
    max_attempts: int = Field(ge=1, description="Attempts allowed")
    timestamp: int = Field(description="Enqueue time")
    processed_on: int | None = Field(default=None, description="Start of latest attempt")
    finished_on: int | None = Field(default=None, description="Terminal transition time")

    @classmethod
    def from_snapshot(cls, snapshot: "JobSnapshot") -> "JobResponse":
        """Create response from a store snapshot."""
        return cls.model_validate(snapshot.to_dict())


class QueueCountsResponse(BaseModel):
    """
    Per-state counts for one job type.

    Attributes:
        job_type: Queue these counts describe
        paused: Whether leasing is paused for the type
        counts: Number of jobs in each state
    """

    job_type: JobType
    paused: bool = False
    counts: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def create(cls, job_type: JobType, counts: "JobCounts", paused: bool) -> "QueueCountsResponse":
        return cls(job_type=job_type, paused=paused, counts=counts.to_dict())


class QueueStatsResponse(BaseModel):
    """Counts for every registered job type."""

    queues: list[QueueCountsResponse] = Field(default_factory=list)


class QueueControlResponse(BaseModel):
    """Response schema for pause and resume."""

    job_type: JobType
    paused: bool


class CleanResponse(BaseModel):
    """
    Response schema for queue cleaning.

    Attributes:
        job_type: Queue that was cleaned
        grace_ms: Age threshold used
        removed: Ids of the evicted jobs
    """

    job_type: JobType
    grace_ms: int
    removed: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def count(self) -> int:
        """Number of evicted jobs."""
        return len(self.removed)
