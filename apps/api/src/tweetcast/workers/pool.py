"""
Worker pool: one executor per registered job type.
"""

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from tweetcast.core.exceptions import StoreError
from tweetcast.models.enums import JobType
from tweetcast.queue.registry import PipelineRegistry
from tweetcast.queue.store import JobStore
from tweetcast.workers.executor import Listener, Routine, WorkerExecutor

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Owns and supervises the executors for every job type.

    A fatal store error in any executor sets ``fatal_event``; the process
    that runs the pool waits on it and shuts down with a non-zero exit.
    """

    def __init__(
        self,
        registry: PipelineRegistry,
        store: JobStore,
        routines: Mapping[JobType, Routine],
        lease_ttl_ms: int = 300_000,
        poll_interval: float = 1.0,
        worker_id: str | None = None,
    ) -> None:
        missing = [jt.value for jt in registry.job_types() if jt not in routines]
        if missing:
            raise ValueError(f"No stage routine registered for: {', '.join(missing)}")

        self.fatal_event = threading.Event()
        self.fatal_error: StoreError | None = None
        self._started = False
        self.executors: dict[JobType, WorkerExecutor] = {
            config.job_type: WorkerExecutor(
                config=config,
                store=store,
                routine=routines[config.job_type],
                lease_ttl_ms=lease_ttl_ms,
                poll_interval=poll_interval,
                worker_id=worker_id,
                on_fatal=self._on_fatal,
            )
            for config in registry.all()
        }

    def __getitem__(self, job_type: JobType) -> WorkerExecutor:
        return self.executors[job_type]

    @property
    def started(self) -> bool:
        return self._started

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe a listener to an event on every executor."""
        for executor in self.executors.values():
            executor.on(event, listener)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for executor in self.executors.values():
            executor.start()
        logger.info(f"Worker pool started with {len(self.executors)} executors")

    def _on_fatal(self, executor: WorkerExecutor, error: StoreError) -> None:
        if self.fatal_error is None:
            self.fatal_error = error
        logger.critical(
            f"Executor {executor.job_type.value} stopped on a store failure; "
            "shutting down the worker pool"
        )
        for other in self.executors.values():
            other.stop_leasing()
        self.fatal_event.set()

    def close(self, timeout: float = 30.0) -> bool:
        """
        Close every executor in parallel.

        Returns:
            True if all executors drained within the timeout
        """
        if not self.executors:
            return True
        with ThreadPoolExecutor(max_workers=len(self.executors)) as closer:
            results = list(
                closer.map(lambda ex: ex.close(timeout), self.executors.values())
            )
        drained = all(results)
        logger.info(f"Worker pool closed (drained={drained})")
        return drained


__all__ = ["WorkerPool"]
