"""
Logging setup shared by the API and worker processes.

Uses the same line format as the Celery workers so API, executor and
maintenance logs interleave cleanly.
"""

import logging

from tweetcast.core.config import Settings, get_settings

LOG_FORMAT = "[%(asctime)s: %(levelname)s/%(processName)s] %(name)s: %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure the root logger from settings.

    Safe to call more than once; later calls only adjust the level.
    """
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

    # SQL echo is controlled by the engine, keep the logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
