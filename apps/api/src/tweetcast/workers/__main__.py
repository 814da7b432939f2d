"""
Worker process entry point.

Runs one executor per job type until SIGTERM/SIGINT, or until an executor
hits a fatal store error, then drains in-flight jobs and exits. A fatal
exit is non-zero so the process supervisor restarts the worker.

Usage:
    python -m tweetcast.workers
    tweetcast-worker
"""

import logging
import signal
import sys
import threading
from types import FrameType

from tweetcast.container import PipelineServices
from tweetcast.core.config import get_settings
from tweetcast.core.logging_config import configure_logging

logger = logging.getLogger("tweetcast.workers")

EXIT_OK = 0
EXIT_FATAL = 1


def main() -> int:
    settings = get_settings()
    configure_logging(settings)

    services = PipelineServices.build(settings, with_workers=True)
    pool = services.pool
    if pool is None:
        raise RuntimeError("Pipeline services were built without workers")

    stop = threading.Event()

    def _handle_signal(signum: int, frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down workers")
        stop.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    services.start_workers()
    logger.info(
        f"Worker pool started for {len(pool.executors)} job types",
        extra={"job_types": [jt.value for jt in pool.executors]},
    )

    while not stop.is_set() and not pool.fatal_event.is_set():
        pool.fatal_event.wait(0.5)

    drained = services.shutdown()
    if not drained:
        logger.warning("Shutdown timed out; unfinished jobs will be reclaimed after lease expiry")

    if pool.fatal_error is not None:
        logger.error(f"Worker pool stopped on a fatal store error: {pool.fatal_error.message}")
        return EXIT_FATAL
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
