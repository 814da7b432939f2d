"""
SQLAlchemy-backed job store.

Shared by every API and worker process that points at the same database.
Leasing selects the best candidate (``FOR UPDATE SKIP LOCKED`` where the
dialect supports it) and then claims it with a conditional UPDATE guarded
on the row still being ``waiting``; only a claim that changed exactly one
row wins. Resolution UPDATEs are guarded on the lease token the same way.
"""

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tweetcast.core.database import session_scope
from tweetcast.core.exceptions import LeaseLostError, StoreError
from tweetcast.models.enums import JobState, JobType
from tweetcast.models.job import QueueControl, QueueJob
from tweetcast.queue.store import (
    DEFAULT_CLEAN_LIMIT,
    LEASE_EXPIRED_REASON,
    Clock,
    JobCounts,
    JobSnapshot,
    JobStore,
    Lease,
    NewJob,
    next_state_after_failure,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_snapshot(row: QueueJob) -> JobSnapshot:
    return JobSnapshot(
        id=row.id,
        job_type=row.job_type,
        state=row.state,
        priority=row.priority,
        payload=row.payload,
        result=row.result,
        failure_reason=row.failure_reason,
        progress=row.progress,
        attempts_made=row.attempts_made,
        max_attempts=row.max_attempts,
        timestamp=row.created_ms,
        processed_on=row.processed_ms,
        finished_on=row.finished_ms,
        available_at=row.available_at_ms,
        lease_owner=row.lease_owner,
    )


class SqlJobStore(JobStore):
    """
    Durable job store on the application database.

    Waiting is a bounded poll: ``wait_for_job`` sleeps on an event for the
    poll interval, and ``wake`` sets the event to release sleepers early.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__(clock)
        self._session_factory = session_factory
        self._poll_interval = poll_interval
        self._wakeup = threading.Event()
        self._closed = False

    # -------------------------------------------------------------------------
    # Session handling
    # -------------------------------------------------------------------------

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        if self._closed:
            raise StoreError("Job store is closed")
        try:
            with session_scope(self._session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            logger.error(
                f"Job store operation failed: {e}",
                extra={"error_type": type(e).__name__},
            )
            raise StoreError("Job store operation failed", original_error=str(e)) from e

    def _run(self, fn: Callable[[Session], T]) -> T:
        with self._session() as db:
            return fn(db)

    # -------------------------------------------------------------------------
    # Helpers (called inside an open session)
    # -------------------------------------------------------------------------

    def _promote_delayed(self, db: Session, job_type: JobType, now: int) -> None:
        db.execute(
            update(QueueJob)
            .where(
                QueueJob.job_type == job_type,
                QueueJob.state == JobState.DELAYED,
                QueueJob.available_at_ms <= now,
            )
            .values(state=JobState.WAITING)
            .execution_options(synchronize_session=False)
        )

    def _paused(self, db: Session, job_type: JobType) -> bool:
        control = db.get(QueueControl, job_type)
        return bool(control and control.paused)

    def _held(self, db: Session, lease: Lease) -> QueueJob:
        row = db.scalars(
            select(QueueJob)
            .where(
                QueueJob.id == lease.job_id,
                QueueJob.state == JobState.ACTIVE,
                QueueJob.lease_token == lease.token,
            )
            .with_for_update()
        ).first()
        if row is None:
            raise LeaseLostError(lease.job_id, lease.job_type.value)
        return row

    def _trim(self, db: Session, job_type: JobType, state: JobState, keep: int) -> None:
        stale = db.scalars(
            select(QueueJob.seq)
            .where(QueueJob.job_type == job_type, QueueJob.state == state)
            .order_by(QueueJob.finished_ms.desc(), QueueJob.seq.desc())
            .offset(keep)
        ).all()
        if stale:
            db.execute(
                delete(QueueJob)
                .where(QueueJob.seq.in_(stale))
                .execution_options(synchronize_session=False)
            )
            logger.debug(
                f"Trimmed {len(stale)} {state.value} {job_type.value} jobs",
                extra={"job_type": job_type.value, "state": state.value},
            )

    def _fail_row(self, db: Session, row: QueueJob, reason: str, now: int) -> None:
        state, available_at = next_state_after_failure(
            row.attempts_made,
            row.max_attempts,
            row.backoff_type,
            row.backoff_delay_ms,
            now,
        )
        row.state = state
        row.failure_reason = reason
        row.available_at_ms = available_at
        row.lease_token = None
        row.lease_owner = None
        row.lease_expires_ms = None
        if state == JobState.FAILED:
            row.finished_ms = now
            db.flush()
            self._trim(db, row.job_type, JobState.FAILED, row.keep_failed)
        else:
            self._wakeup.set()

    # -------------------------------------------------------------------------
    # JobStore interface
    # -------------------------------------------------------------------------

    def add(self, job: NewJob) -> JobSnapshot:
        def _add(db: Session) -> JobSnapshot:
            now = self.now()
            row = QueueJob(
                id=job.id,
                job_type=job.job_type,
                state=JobState.WAITING,
                priority=job.priority,
                payload=job.payload,
                progress=0,
                attempts_made=0,
                max_attempts=job.max_attempts,
                backoff_type=job.backoff_type,
                backoff_delay_ms=job.backoff_delay_ms,
                keep_completed=job.keep_completed,
                keep_failed=job.keep_failed,
                available_at_ms=now,
                created_ms=now,
            )
            db.add(row)
            db.flush()
            return _to_snapshot(row)

        snapshot = self._run(_add)
        self._wakeup.set()
        return snapshot

    def get(self, job_type: JobType, job_id: str) -> JobSnapshot | None:
        def _get(db: Session) -> JobSnapshot | None:
            self._promote_delayed(db, job_type, self.now())
            row = db.scalars(
                select(QueueJob).where(
                    QueueJob.id == job_id,
                    QueueJob.job_type == job_type,
                )
            ).first()
            return _to_snapshot(row) if row else None

        return self._run(_get)

    def lease(self, job_type: JobType, owner: str, ttl_ms: int) -> Lease | None:
        def _lease(db: Session) -> Lease | None:
            if self._paused(db, job_type):
                return None
            now = self.now()
            self._promote_delayed(db, job_type, now)

            candidate = db.scalars(
                select(QueueJob)
                .where(
                    QueueJob.job_type == job_type,
                    QueueJob.state == JobState.WAITING,
                )
                .order_by(QueueJob.priority.desc(), QueueJob.seq.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            ).first()
            if candidate is None:
                return None

            token = str(uuid4())
            claimed = db.execute(
                update(QueueJob)
                .where(
                    QueueJob.seq == candidate.seq,
                    QueueJob.state == JobState.WAITING,
                )
                .values(
                    state=JobState.ACTIVE,
                    attempts_made=QueueJob.attempts_made + 1,
                    progress=0,
                    processed_ms=now,
                    lease_token=token,
                    lease_owner=owner,
                    lease_expires_ms=now + ttl_ms,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                # Another executor claimed it between select and update
                return None

            db.refresh(candidate)
            return Lease(
                job=_to_snapshot(candidate),
                token=token,
                owner=owner,
                expires_at=now + ttl_ms,
            )

        return self._run(_lease)

    def extend_lease(self, lease: Lease, ttl_ms: int) -> bool:
        def _extend(db: Session) -> bool:
            extended = db.execute(
                update(QueueJob)
                .where(
                    QueueJob.id == lease.job_id,
                    QueueJob.state == JobState.ACTIVE,
                    QueueJob.lease_token == lease.token,
                )
                .values(lease_expires_ms=self.now() + ttl_ms)
                .execution_options(synchronize_session=False)
            )
            return extended.rowcount == 1

        return self._run(_extend)

    def update_progress(self, lease: Lease, progress: int) -> int:
        value = min(max(progress, 0), 100)

        def _progress(db: Session) -> int:
            row = self._held(db, lease)
            if value > row.progress:
                row.progress = value
            return row.progress

        return self._run(_progress)

    def complete(self, lease: Lease, result: dict[str, Any]) -> JobSnapshot:
        def _complete(db: Session) -> JobSnapshot:
            row = self._held(db, lease)
            row.state = JobState.COMPLETED
            row.result = result
            row.progress = 100
            row.finished_ms = self.now()
            row.lease_token = None
            row.lease_owner = None
            row.lease_expires_ms = None
            db.flush()
            snapshot = _to_snapshot(row)
            self._trim(db, row.job_type, JobState.COMPLETED, row.keep_completed)
            return snapshot

        return self._run(_complete)

    def fail(self, lease: Lease, reason: str) -> JobSnapshot:
        def _fail(db: Session) -> JobSnapshot:
            row = self._held(db, lease)
            self._fail_row(db, row, reason, self.now())
            return _to_snapshot(row)

        return self._run(_fail)

    def counts(self, job_type: JobType) -> JobCounts:
        def _counts(db: Session) -> JobCounts:
            self._promote_delayed(db, job_type, self.now())
            rows = db.execute(
                select(QueueJob.state, func.count())
                .where(QueueJob.job_type == job_type)
                .group_by(QueueJob.state)
            ).all()
            counts = JobCounts()
            for state, amount in rows:
                counts.add(JobState(state), amount)
            return counts

        return self._run(_counts)

    def _set_paused(self, job_type: JobType, paused: bool) -> None:
        def _set(db: Session) -> None:
            control = db.get(QueueControl, job_type)
            if control is None:
                db.add(QueueControl(job_type=job_type, paused=paused))
            else:
                control.paused = paused

        self._run(_set)

    def pause(self, job_type: JobType) -> None:
        self._set_paused(job_type, True)

    def resume(self, job_type: JobType) -> None:
        self._set_paused(job_type, False)
        self._wakeup.set()

    def is_paused(self, job_type: JobType) -> bool:
        return self._run(lambda db: self._paused(db, job_type))

    def clean(
        self,
        job_type: JobType,
        grace_ms: int,
        limit: int = DEFAULT_CLEAN_LIMIT,
    ) -> list[str]:
        def _clean(db: Session) -> list[str]:
            cutoff = self.now() - grace_ms
            removed: list[str] = []
            for state in (JobState.COMPLETED, JobState.FAILED):
                rows = db.execute(
                    select(QueueJob.seq, QueueJob.id)
                    .where(
                        QueueJob.job_type == job_type,
                        QueueJob.state == state,
                        QueueJob.finished_ms < cutoff,
                    )
                    .order_by(QueueJob.finished_ms.asc(), QueueJob.seq.asc())
                    .limit(limit)
                ).all()
                if not rows:
                    continue
                db.execute(
                    delete(QueueJob)
                    .where(QueueJob.seq.in_([seq for seq, _ in rows]))
                    .execution_options(synchronize_session=False)
                )
                removed.extend(job_id for _, job_id in rows)
            return removed

        return self._run(_clean)

    def reclaim_expired(self, job_type: JobType | None = None) -> list[JobSnapshot]:
        def _reclaim(db: Session) -> list[JobSnapshot]:
            now = self.now()
            stmt = (
                select(QueueJob)
                .where(
                    QueueJob.state == JobState.ACTIVE,
                    QueueJob.lease_expires_ms < now,
                )
                .with_for_update(skip_locked=True)
            )
            if job_type is not None:
                stmt = stmt.where(QueueJob.job_type == job_type)

            reclaimed: list[JobSnapshot] = []
            for row in db.scalars(stmt).all():
                if row.attempts_made < row.max_attempts:
                    row.state = JobState.WAITING
                    row.failure_reason = LEASE_EXPIRED_REASON
                    row.available_at_ms = now
                    row.lease_token = None
                    row.lease_owner = None
                    row.lease_expires_ms = None
                    self._wakeup.set()
                else:
                    self._fail_row(db, row, LEASE_EXPIRED_REASON, now)
                reclaimed.append(_to_snapshot(row))
            return reclaimed

        return self._run(_reclaim)

    def wait_for_job(self, job_type: JobType, timeout: float) -> None:
        if self._closed:
            return
        self._wakeup.wait(min(timeout, self._poll_interval))
        self._wakeup.clear()

    def wake(self) -> None:
        self._wakeup.set()

    def ping(self) -> None:
        self._run(lambda db: db.execute(text("SELECT 1")).scalar_one())

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()
        logger.info("SQL job store closed")
