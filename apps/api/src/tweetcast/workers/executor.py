"""
Worker executor: runs the stage routine for one job type.

Each executor owns one leasing thread and a bounded thread pool sized to
the type's concurrency cap. The leasing thread:

1. Waits for a free execution slot
2. Leases the next eligible job from the store (or blocks until one may
   be ready)
3. Hands the lease to the pool, which runs the routine and resolves the
   job as completed or failed
4. Periodically renews in-flight leases and reclaims expired ones

A StoreError anywhere in this cycle is fatal: the executor stops and
reports it through ``on_fatal`` so the owning pool can shut the process
down.
"""

import logging
import socket
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from uuid import uuid4

from tweetcast.core.exceptions import ExhaustedRetriesError, LeaseLostError, StoreError
from tweetcast.models.enums import JobState, JobType
from tweetcast.queue.registry import JobTypeConfig
from tweetcast.queue.store import JobSnapshot, JobStore, Lease

logger = logging.getLogger(__name__)

EVENTS = ("completed", "retrying", "failed", "error")

Listener = Callable[..., None]


class JobContext:
    """
    Handle a stage routine gets for the job it is running.

    Progress reports are clamped to 0-100 and never go backwards. If the
    lease was lost (reclaimed after expiry), ``report_progress`` raises
    LeaseLostError, which aborts the routine without resolving the job.
    """

    def __init__(self, lease: Lease, store: JobStore) -> None:
        self.lease = lease
        self._store = store
        self._progress = 0
        self.logger = logging.LoggerAdapter(
            logging.getLogger(f"tweetcast.stages.{lease.job_type.value}"),
            {
                "job_id": lease.job_id,
                "job_type": lease.job_type.value,
                "attempt": lease.job.attempts_made,
            },
        )

    @property
    def job_id(self) -> str:
        return self.lease.job_id

    @property
    def job_type(self) -> JobType:
        return self.lease.job_type

    @property
    def attempt(self) -> int:
        return self.lease.job.attempts_made

    @property
    def progress(self) -> int:
        return self._progress

    def report_progress(self, value: int | float) -> int:
        """
        Record progress for the current attempt.

        Args:
            value: Percentage complete; clamped to 0-100

        Returns:
            The stored progress

        Raises:
            LeaseLostError: If this worker no longer holds the job
        """
        clamped = min(max(int(value), 0), 100)
        if clamped <= self._progress:
            return self._progress
        self._progress = self._store.update_progress(self.lease, clamped)
        return self._progress


Routine = Callable[[dict[str, Any], JobContext], dict[str, Any] | None]


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{uuid4().hex[:8]}"


class WorkerExecutor:
    """
    Leases and runs jobs of one type with a bounded concurrency.

    Example:
        ```python
        executor = WorkerExecutor(
            config=PIPELINE_REGISTRY.get(JobType.FETCH_TWEETS),
            store=store,
            routine=fetch_stage,
        )
        executor.on("completed", lambda snapshot: print(snapshot.result))
        executor.start()
        ...
        executor.close(timeout=30)
        ```
    """

    def __init__(
        self,
        config: JobTypeConfig,
        store: JobStore,
        routine: Routine,
        lease_ttl_ms: int = 300_000,
        poll_interval: float = 1.0,
        worker_id: str | None = None,
        on_fatal: Callable[["WorkerExecutor", StoreError], None] | None = None,
    ) -> None:
        self.config = config
        self.job_type = config.job_type
        self._store = store
        self._routine = routine
        self._lease_ttl_ms = lease_ttl_ms
        self._poll_interval = poll_interval
        self._renew_interval = max(lease_ttl_ms / 3000, 0.05)
        self.worker_id = worker_id or default_worker_id()
        self._on_fatal = on_fatal

        self._slots = threading.BoundedSemaphore(config.concurrency)
        self._pool = ThreadPoolExecutor(
            max_workers=config.concurrency,
            thread_name_prefix=f"{self.job_type.value}-worker",
        )
        self._inflight: dict[str, Lease] = {}
        self._inflight_lock = threading.Lock()
        self._idle = threading.Condition(self._inflight_lock)
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None
        self._listeners: dict[str, list[Listener]] = {name: [] for name in EVENTS}
        self.fatal_error: StoreError | None = None

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        """
        Subscribe to a lifecycle event.

        Events and listener arguments:
            completed(snapshot)
            retrying(snapshot, error)
            failed(snapshot, ExhaustedRetriesError)
            error(error)
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown executor event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in self._listeners[event]:
            try:
                listener(*args)
            except Exception:
                logger.exception(
                    f"Listener for '{event}' raised on {self.job_type.value}",
                    extra={"job_type": self.job_type.value, "event": event},
                )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        with self._inflight_lock:
            return len(self._inflight)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._lease_loop,
            name=f"{self.job_type.value}-leaser",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"Started executor for {self.job_type.value} "
            f"(concurrency={self.config.concurrency}, worker={self.worker_id})"
        )

    def stop_leasing(self) -> None:
        """Stop taking new jobs. In-flight jobs keep running."""
        self._stopping.set()
        self._store.wake()

    def close(self, timeout: float = 30.0) -> bool:
        """
        Stop leasing and wait for in-flight jobs.

        Leases of in-flight jobs keep being renewed while waiting, so a
        timeout longer than the lease TTL does not let them be reclaimed.

        Args:
            timeout: Seconds to wait for in-flight jobs

        Returns:
            True if nothing was left running
        """
        deadline = time.monotonic() + timeout
        self.stop_leasing()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(max(deadline - time.monotonic(), 0))

        last_renewal = time.monotonic()
        while True:
            with self._idle:
                remaining = deadline - time.monotonic()
                if not self._inflight or remaining <= 0:
                    drained = not self._inflight
                    leftover = len(self._inflight)
                    break
                self._idle.wait(min(remaining, self._renew_interval))
            if time.monotonic() - last_renewal >= self._renew_interval:
                self._renew_while_draining()
                last_renewal = time.monotonic()

        self._pool.shutdown(wait=drained, cancel_futures=True)
        if drained:
            logger.info(f"Executor for {self.job_type.value} drained")
        else:
            logger.warning(
                f"Executor for {self.job_type.value} closed with {leftover} job(s) "
                "still running; their leases will expire",
                extra={"job_type": self.job_type.value, "in_flight": leftover},
            )
        return drained

    # -------------------------------------------------------------------------
    # Leasing loop
    # -------------------------------------------------------------------------

    def _lease_loop(self) -> None:
        last_renewal = time.monotonic()
        try:
            while not self._stopping.is_set():
                if time.monotonic() - last_renewal >= self._renew_interval:
                    self._renew_leases()
                    self._store.reclaim_expired(self.job_type)
                    last_renewal = time.monotonic()

                if not self._slots.acquire(timeout=self._poll_interval):
                    continue
                if self._stopping.is_set():
                    self._slots.release()
                    break

                lease = self._store.lease(self.job_type, self.worker_id, self._lease_ttl_ms)
                if lease is None:
                    self._slots.release()
                    self._store.wait_for_job(self.job_type, self._poll_interval)
                    continue

                with self._inflight_lock:
                    self._inflight[lease.token] = lease
                self._pool.submit(self._execute, lease)
        except StoreError as e:
            self._handle_fatal(e)
        except Exception:
            logger.exception(f"Leasing loop for {self.job_type.value} crashed")
            self._handle_fatal(StoreError(f"Leasing loop for {self.job_type.value} crashed"))

    def _renew_leases(self) -> None:
        with self._inflight_lock:
            leases = list(self._inflight.values())
        for lease in leases:
            if not self._store.extend_lease(lease, self._lease_ttl_ms):
                logger.warning(
                    f"Lease on {self.job_type.value} job {lease.job_id} was lost",
                    extra={"job_id": lease.job_id, "job_type": self.job_type.value},
                )

    def _renew_while_draining(self) -> None:
        try:
            self._renew_leases()
        except StoreError as e:
            self._handle_fatal(e)

    def _handle_fatal(self, error: StoreError) -> None:
        if self.fatal_error is not None:
            return
        self.fatal_error = error
        self._stopping.set()
        logger.critical(
            f"Job store failure in {self.job_type.value} executor: {error.message}",
            extra={"job_type": self.job_type.value, "error_code": error.code},
        )
        self._emit("error", error)
        if self._on_fatal is not None:
            self._on_fatal(self, error)

    # -------------------------------------------------------------------------
    # Job execution
    # -------------------------------------------------------------------------

    def _execute(self, lease: Lease) -> None:
        log_extra = {
            "job_id": lease.job_id,
            "job_type": self.job_type.value,
            "attempt": lease.job.attempts_made,
            "podcast_id": lease.job.payload.get("podcast_id"),
        }
        try:
            logger.info(
                f"Running {self.job_type.value} job {lease.job_id} "
                f"(attempt {lease.job.attempts_made}/{lease.job.max_attempts})",
                extra=log_extra,
            )
            context = JobContext(lease, self._store)
            try:
                result = self._routine(lease.job.payload, context)
            except LeaseLostError:
                raise
            except StoreError:
                raise
            except Exception as e:
                self._resolve_failure(lease, e, log_extra)
            else:
                self._resolve_success(lease, result or {}, log_extra)
        except LeaseLostError as e:
            logger.warning(
                f"Lost lease on {self.job_type.value} job {lease.job_id}; "
                "result discarded",
                extra=log_extra,
            )
            self._emit("error", e)
        except StoreError as e:
            self._handle_fatal(e)
        finally:
            with self._idle:
                self._inflight.pop(lease.token, None)
                self._idle.notify_all()
            self._slots.release()

    def _resolve_success(
        self,
        lease: Lease,
        result: dict[str, Any],
        log_extra: dict[str, Any],
    ) -> None:
        snapshot = self._store.complete(lease, result)
        logger.info(
            f"Completed {self.job_type.value} job {lease.job_id}",
            extra=log_extra,
        )
        self._emit("completed", snapshot)

    def _resolve_failure(
        self,
        lease: Lease,
        error: Exception,
        log_extra: dict[str, Any],
    ) -> None:
        reason = str(error) or type(error).__name__
        snapshot: JobSnapshot = self._store.fail(lease, reason)

        if snapshot.state == JobState.FAILED:
            exhausted = ExhaustedRetriesError(
                job_id=lease.job_id,
                stage=self.job_type.value,
                attempts=snapshot.attempts_made,
                last_reason=reason,
            )
            logger.error(
                f"{self.job_type.value} job {lease.job_id} failed permanently: {reason}",
                extra=log_extra,
            )
            self._emit("failed", snapshot, exhausted)
        else:
            logger.warning(
                f"{self.job_type.value} job {lease.job_id} failed, "
                f"will retry ({snapshot.state.value}): {reason}",
                extra=log_extra,
            )
            self._emit("retrying", snapshot, error)


__all__ = [
    "EVENTS",
    "JobContext",
    "Routine",
    "WorkerExecutor",
    "default_worker_id",
]
