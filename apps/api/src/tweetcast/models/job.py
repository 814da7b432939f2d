"""
Job queue tables backing the SQL job store.

A ``QueueJob`` row is one unit of queued work. All times are epoch
milliseconds so ordering and backoff arithmetic stay integer-only and
identical across backends. Jobs are execution records: they are evicted by
retention trimming and cleaning, never soft-deleted.
"""

from typing import Any

from sqlalchemy import BigInteger, Boolean, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tweetcast.models.base import Base
from tweetcast.models.enums import BackoffType, JobState, JobType


def _enum_column(enum_cls: type, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda x: [e.value for e in x],
    )


class QueueJob(Base):
    """
    Durable job record.

    Attributes:
        seq: Enqueue sequence number, breaks priority ties
        id: Opaque job identifier handed to producers
        job_type: Queue the job belongs to
        state: waiting, active, delayed, completed or failed
        priority: Higher values are leased first
        payload: Validated stage input
        result: Stage output once completed
        failure_reason: Last failure message
        progress: 0-100, reset at the start of every attempt
        attempts_made: Attempts started so far
        max_attempts / backoff_type / backoff_delay_ms: Retry policy copy
        keep_completed / keep_failed: Retention policy copy
        lease_token / lease_owner / lease_expires_ms: Current lease
        available_at_ms: When a delayed job becomes eligible again
    """

    __tablename__ = "queue_jobs"
    __table_args__ = (
        Index("ix_queue_jobs_lease_order", "job_type", "state", "priority", "seq"),
        Index("ix_queue_jobs_finished", "job_type", "state", "finished_ms"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    job_type: Mapped[JobType] = mapped_column(
        _enum_column(JobType, "job_type"),
        nullable=False,
    )
    state: Mapped[JobState] = mapped_column(
        _enum_column(JobState, "job_state"),
        nullable=False,
        default=JobState.WAITING,
    )
    priority: Mapped[int] = mapped_column(BigInteger, nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    result: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    backoff_type: Mapped[BackoffType] = mapped_column(
        _enum_column(BackoffType, "backoff_type"),
        nullable=False,
    )
    backoff_delay_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    keep_completed: Mapped[int] = mapped_column(Integer, nullable=False)
    keep_failed: Mapped[int] = mapped_column(Integer, nullable=False)

    lease_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    lease_owner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lease_expires_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    available_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processed_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    finished_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the job."""
        return f"<QueueJob {self.id} [{self.job_type.value}:{self.state.value}]>"


class QueueControl(Base):
    """Per-type pause flag, shared by every executor instance."""

    __tablename__ = "queue_controls"

    job_type: Mapped[JobType] = mapped_column(
        _enum_column(JobType, "job_type"),
        primary_key=True,
    )
    paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
