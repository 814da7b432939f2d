"""
Job store abstraction and the in-memory backend.

The job store is the single source of truth for queued work. It holds
waiting, delayed, active, completed and failed jobs per job type and
serializes every state transition, so two executors can never both hold
the lease on the same job.

Backends:
- InMemoryJobStore: process-local, for development and tests
- SqlJobStore (tweetcast.queue.sql_store): shared, durable, for production

All timestamps are epoch milliseconds supplied by an injectable clock.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from tweetcast.core.exceptions import LeaseLostError, StoreError
from tweetcast.models.enums import BackoffType, JobState, JobType
from tweetcast.queue.registry import RetryPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

# Upper bound on jobs evicted per state by one clean() call
DEFAULT_CLEAN_LIMIT = 1000

LEASE_EXPIRED_REASON = "Lease expired before the job was resolved"


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Store data types
# =============================================================================


@dataclass(frozen=True)
class NewJob:
    """Everything the store needs to persist a freshly enqueued job."""

    id: str
    job_type: JobType
    priority: int
    payload: dict[str, Any]
    max_attempts: int
    backoff_type: BackoffType
    backoff_delay_ms: int
    keep_completed: int
    keep_failed: int


@dataclass(frozen=True)
class JobSnapshot:
    """
    Read-only view of a job at one point in time.

    Attributes:
        id: Job identifier
        job_type: Queue the job belongs to
        state: Lifecycle state
        priority: Lease priority
        payload: Stage input
        result: Stage output (completed jobs)
        failure_reason: Last failure message
        progress: 0-100 within the current attempt
        attempts_made: Attempts started so far
        max_attempts: Attempts allowed
        timestamp: Enqueue time (epoch ms)
        processed_on: Start of the latest attempt (epoch ms)
        finished_on: Terminal transition time (epoch ms)
        available_at: When a delayed job becomes eligible (epoch ms)
    """

    id: str
    job_type: JobType
    state: JobState
    priority: int
    payload: dict[str, Any]
    result: dict[str, Any] | None
    failure_reason: str | None
    progress: int
    attempts_made: int
    max_attempts: int
    timestamp: int
    processed_on: int | None = None
    finished_on: int | None = None
    available_at: int | None = None
    lease_owner: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and logs."""
        return {
            "job_id": self.id,
            "job_type": self.job_type.value,
            "state": self.state.value,
            "priority": self.priority,
            "progress": self.progress,
            "data": self.payload,
            "return_value": self.result,
            "failed_reason": self.failure_reason,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "timestamp": self.timestamp,
            "processed_on": self.processed_on,
            "finished_on": self.finished_on,
        }


@dataclass(frozen=True)
class Lease:
    """Exclusive, time-bounded ownership of one active job."""

    job: JobSnapshot
    token: str
    owner: str
    expires_at: int

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def job_type(self) -> JobType:
        return self.job.job_type


@dataclass
class JobCounts:
    """Per-state job counts for one type."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }

    def add(self, state: JobState, amount: int = 1) -> None:
        setattr(self, state.value, getattr(self, state.value) + amount)


def next_state_after_failure(
    attempts_made: int,
    max_attempts: int,
    backoff_type: BackoffType,
    backoff_delay_ms: int,
    now: int,
) -> tuple[JobState, int]:
    """
    Decide where a failed attempt sends the job.

    Returns:
        (state, available_at) - FAILED when attempts are exhausted, DELAYED
        while a backoff delay is pending, WAITING for a zero delay.
    """
    if attempts_made >= max_attempts:
        return JobState.FAILED, now

    policy = RetryPolicy(
        max_attempts=max_attempts,
        backoff=backoff_type,
        base_delay_ms=backoff_delay_ms,
    )
    delay = policy.delay_for(attempts_made)
    if delay <= 0:
        return JobState.WAITING, now
    return JobState.DELAYED, now + delay


# =============================================================================
# Abstract store
# =============================================================================


class JobStore(ABC):
    """
    Abstract job store.

    Implementations must make ``lease`` atomic: a job handed to one lease
    holder is invisible to every other caller until it is resolved or its
    lease expires. ``complete``, ``fail`` and ``update_progress`` must
    verify the lease token and raise LeaseLostError on mismatch.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or system_clock

    def now(self) -> int:
        return self._clock()

    @abstractmethod
    def add(self, job: NewJob) -> JobSnapshot:
        """Persist a new job in the waiting state."""

    @abstractmethod
    def get(self, job_type: JobType, job_id: str) -> JobSnapshot | None:
        """Return a job of the given type, or None."""

    @abstractmethod
    def lease(self, job_type: JobType, owner: str, ttl_ms: int) -> Lease | None:
        """
        Lease the next eligible job of a type.

        Eligible means waiting, or delayed with its backoff elapsed.
        Highest priority wins, then earliest enqueue. Returns None when the
        type is paused or nothing is ready.
        """

    @abstractmethod
    def extend_lease(self, lease: Lease, ttl_ms: int) -> bool:
        """Push a held lease's expiry forward. False if the lease is lost."""

    @abstractmethod
    def update_progress(self, lease: Lease, progress: int) -> int:
        """
        Raise the job's progress. Lower values are ignored.

        Returns:
            The stored progress value

        Raises:
            LeaseLostError: If the lease is no longer held
        """

    @abstractmethod
    def complete(self, lease: Lease, result: dict[str, Any]) -> JobSnapshot:
        """Mark the leased job completed and apply completed-retention."""

    @abstractmethod
    def fail(self, lease: Lease, reason: str) -> JobSnapshot:
        """
        Record a failed attempt.

        The job moves to delayed (or waiting) while attempts remain,
        otherwise to failed with failed-retention applied.
        """

    @abstractmethod
    def counts(self, job_type: JobType) -> JobCounts:
        """Count jobs of a type by state."""

    @abstractmethod
    def pause(self, job_type: JobType) -> None:
        """Stop granting leases for a type."""

    @abstractmethod
    def resume(self, job_type: JobType) -> None:
        """Grant leases for a type again."""

    @abstractmethod
    def is_paused(self, job_type: JobType) -> bool:
        """Whether a type is paused."""

    @abstractmethod
    def clean(
        self,
        job_type: JobType,
        grace_ms: int,
        limit: int = DEFAULT_CLEAN_LIMIT,
    ) -> list[str]:
        """
        Evict completed and failed jobs finished more than ``grace_ms`` ago.

        At most ``limit`` jobs per state, oldest first.

        Returns:
            Evicted job ids
        """

    @abstractmethod
    def reclaim_expired(self, job_type: JobType | None = None) -> list[JobSnapshot]:
        """
        Recover active jobs whose lease expired.

        Jobs with attempts left go back to waiting; the rest fail.
        """

    @abstractmethod
    def wait_for_job(self, job_type: JobType, timeout: float) -> None:
        """Block up to ``timeout`` seconds or until a job may be ready."""

    @abstractmethod
    def wake(self) -> None:
        """Release every thread blocked in wait_for_job."""

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreError if the store is unreachable."""

    @abstractmethod
    def close(self) -> None:
        """Release resources. Later calls raise StoreError."""


# =============================================================================
# In-memory store
# =============================================================================


@dataclass
class _JobRecord:
    seq: int
    job: NewJob
    state: JobState = JobState.WAITING
    result: dict[str, Any] | None = None
    failure_reason: str | None = None
    progress: int = 0
    attempts_made: int = 0
    lease_token: str | None = None
    lease_owner: str | None = None
    lease_expires: int | None = None
    available_at: int = 0
    created: int = 0
    processed: int | None = None
    finished: int | None = None

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.job.id,
            job_type=self.job.job_type,
            state=self.state,
            priority=self.job.priority,
            payload=self.job.payload,
            result=self.result,
            failure_reason=self.failure_reason,
            progress=self.progress,
            attempts_made=self.attempts_made,
            max_attempts=self.job.max_attempts,
            timestamp=self.created,
            processed_on=self.processed,
            finished_on=self.finished,
            available_at=self.available_at,
            lease_owner=self.lease_owner,
        )


class InMemoryJobStore(JobStore):
    """
    Thread-safe, process-local job store.

    A single re-entrant lock serializes every transition; a condition
    variable on the same lock lets leasing loops sleep until a job is
    added, retried, reclaimed or a type is resumed.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._lock = threading.RLock()
        self._available = threading.Condition(self._lock)
        self._jobs: dict[str, _JobRecord] = {}
        self._paused: set[JobType] = set()
        self._seq = 0
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("Job store is closed")

    def _records(self, job_type: JobType, state: JobState | None = None) -> list[_JobRecord]:
        return [
            r
            for r in self._jobs.values()
            if r.job.job_type == job_type and (state is None or r.state == state)
        ]

    def _promote_delayed(self, job_type: JobType, now: int) -> None:
        for record in self._records(job_type, JobState.DELAYED):
            if record.available_at <= now:
                record.state = JobState.WAITING

    def _held(self, lease: Lease) -> _JobRecord:
        record = self._jobs.get(lease.job_id)
        if (
            record is None
            or record.state != JobState.ACTIVE
            or record.lease_token != lease.token
        ):
            raise LeaseLostError(lease.job_id, lease.job_type.value)
        return record

    def _release(self, record: _JobRecord) -> None:
        record.lease_token = None
        record.lease_owner = None
        record.lease_expires = None

    def _trim(self, job_type: JobType, state: JobState, keep: int) -> None:
        terminal = sorted(
            self._records(job_type, state),
            key=lambda r: (r.finished or 0, r.seq),
            reverse=True,
        )
        for record in terminal[keep:]:
            del self._jobs[record.job.id]

    def _fail_record(self, record: _JobRecord, reason: str, now: int) -> None:
        state, available_at = next_state_after_failure(
            record.attempts_made,
            record.job.max_attempts,
            record.job.backoff_type,
            record.job.backoff_delay_ms,
            now,
        )
        record.state = state
        record.failure_reason = reason
        record.available_at = available_at
        self._release(record)
        if state == JobState.FAILED:
            record.finished = now
            self._trim(record.job.job_type, JobState.FAILED, record.job.keep_failed)
        else:
            self._available.notify_all()

    def add(self, job: NewJob) -> JobSnapshot:
        with self._lock:
            self._check_open()
            now = self.now()
            self._seq += 1
            record = _JobRecord(seq=self._seq, job=job, available_at=now, created=now)
            self._jobs[job.id] = record
            self._available.notify_all()
            return record.snapshot()

    def get(self, job_type: JobType, job_id: str) -> JobSnapshot | None:
        with self._lock:
            self._check_open()
            record = self._jobs.get(job_id)
            if record is None or record.job.job_type != job_type:
                return None
            self._promote_delayed(job_type, self.now())
            return record.snapshot()

    def lease(self, job_type: JobType, owner: str, ttl_ms: int) -> Lease | None:
        with self._lock:
            self._check_open()
            if job_type in self._paused:
                return None
            now = self.now()
            self._promote_delayed(job_type, now)
            ready = self._records(job_type, JobState.WAITING)
            if not ready:
                return None
            record = min(ready, key=lambda r: (-r.job.priority, r.seq))
            record.state = JobState.ACTIVE
            record.attempts_made += 1
            record.progress = 0
            record.processed = now
            record.lease_token = str(uuid4())
            record.lease_owner = owner
            record.lease_expires = now + ttl_ms
            return Lease(
                job=record.snapshot(),
                token=record.lease_token,
                owner=owner,
                expires_at=record.lease_expires,
            )

    def extend_lease(self, lease: Lease, ttl_ms: int) -> bool:
        with self._lock:
            self._check_open()
            try:
                record = self._held(lease)
            except LeaseLostError:
                return False
            record.lease_expires = self.now() + ttl_ms
            return True

    def update_progress(self, lease: Lease, progress: int) -> int:
        with self._lock:
            self._check_open()
            record = self._held(lease)
            record.progress = max(record.progress, min(max(progress, 0), 100))
            return record.progress

    def complete(self, lease: Lease, result: dict[str, Any]) -> JobSnapshot:
        with self._lock:
            self._check_open()
            record = self._held(lease)
            record.state = JobState.COMPLETED
            record.result = result
            record.progress = 100
            record.finished = self.now()
            self._release(record)
            snapshot = record.snapshot()
            self._trim(lease.job_type, JobState.COMPLETED, record.job.keep_completed)
            return snapshot

    def fail(self, lease: Lease, reason: str) -> JobSnapshot:
        with self._lock:
            self._check_open()
            record = self._held(lease)
            self._fail_record(record, reason, self.now())
            return record.snapshot()

    def counts(self, job_type: JobType) -> JobCounts:
        with self._lock:
            self._check_open()
            self._promote_delayed(job_type, self.now())
            counts = JobCounts()
            for record in self._records(job_type):
                counts.add(record.state)
            return counts

    def pause(self, job_type: JobType) -> None:
        with self._lock:
            self._check_open()
            self._paused.add(job_type)

    def resume(self, job_type: JobType) -> None:
        with self._lock:
            self._check_open()
            self._paused.discard(job_type)
            self._available.notify_all()

    def is_paused(self, job_type: JobType) -> bool:
        with self._lock:
            self._check_open()
            return job_type in self._paused

    def clean(
        self,
        job_type: JobType,
        grace_ms: int,
        limit: int = DEFAULT_CLEAN_LIMIT,
    ) -> list[str]:
        with self._lock:
            self._check_open()
            cutoff = self.now() - grace_ms
            removed: list[str] = []
            for state in (JobState.COMPLETED, JobState.FAILED):
                old = sorted(
                    (
                        r
                        for r in self._records(job_type, state)
                        if r.finished is not None and r.finished < cutoff
                    ),
                    key=lambda r: (r.finished, r.seq),
                )
                for record in old[:limit]:
                    del self._jobs[record.job.id]
                    removed.append(record.job.id)
            return removed

    def reclaim_expired(self, job_type: JobType | None = None) -> list[JobSnapshot]:
        with self._lock:
            self._check_open()
            now = self.now()
            reclaimed: list[JobSnapshot] = []
            for record in list(self._jobs.values()):
                if job_type is not None and record.job.job_type != job_type:
                    continue
                if record.state != JobState.ACTIVE:
                    continue
                if record.lease_expires is None or record.lease_expires >= now:
                    continue
                if record.attempts_made < record.job.max_attempts:
                    record.state = JobState.WAITING
                    record.failure_reason = LEASE_EXPIRED_REASON
                    record.available_at = now
                    self._release(record)
                    self._available.notify_all()
                else:
                    self._fail_record(record, LEASE_EXPIRED_REASON, now)
                reclaimed.append(record.snapshot())
            return reclaimed

    def _next_ready_in(self, job_type: JobType, now: int) -> float | None:
        """Seconds until the earliest delayed job becomes eligible."""
        delayed = self._records(job_type, JobState.DELAYED)
        if not delayed:
            return None
        return max(min(r.available_at for r in delayed) - now, 0) / 1000

    def wait_for_job(self, job_type: JobType, timeout: float) -> None:
        with self._available:
            if self._closed:
                return
            if job_type not in self._paused:
                now = self.now()
                self._promote_delayed(job_type, now)
                if self._records(job_type, JobState.WAITING):
                    return
                next_ready = self._next_ready_in(job_type, now)
                if next_ready is not None:
                    timeout = min(timeout, next_ready)
            self._available.wait(timeout)

    def wake(self) -> None:
        with self._available:
            self._available.notify_all()

    def ping(self) -> None:
        with self._lock:
            self._check_open()

    def close(self) -> None:
        with self._available:
            self._closed = True
            self._available.notify_all()
        logger.info("In-memory job store closed")


__all__ = [
    "Clock",
    "DEFAULT_CLEAN_LIMIT",
    "InMemoryJobStore",
    "JobCounts",
    "JobSnapshot",
    "JobStore",
    "Lease",
    "NewJob",
    "next_state_after_failure",
    "system_clock",
]
