"""
Database configuration and session management.

This module provides SQLAlchemy engine configuration and session factories.
Engines are created explicitly by the service container rather than at
import time, so the API process and each worker process own their pools.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tweetcast.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_db_engine(
    database_url: str | None = None,
    settings: Settings | None = None,
) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Optional database URL override. If not provided,
                     uses the URL from settings.
        settings: Optional settings override

    Returns:
        SQLAlchemy engine instance
    """
    settings = settings or get_settings()
    url = database_url or settings.database_url

    engine_kwargs: dict[str, Any] = {}

    if url.startswith("sqlite"):
        # Worker threads share the engine
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(
            {
                "pool_pre_ping": True,  # Test connections before using
                "pool_size": 5,
                "max_overflow": 10,
                "pool_recycle": 3600,  # Recycle connections after 1 hour
            }
        )

    # Add echo for development debugging
    if settings.debug:
        engine_kwargs["echo"] = True

    logger.debug(f"Creating database engine for {url.split('@')[-1]}")
    return create_engine(url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory bound to an engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception and always closes
    the session.

    Yields:
        SQLAlchemy Session object

    Example:
        ```python
        with session_scope(factory) as db:
            podcast = db.get(Podcast, podcast_id)
            podcast.tweet_count = 10
        ```
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.

    Creates all tables defined in the models. This should only be used
    for testing or initial development. Production should use Alembic
    migrations.
    """
    # Import all models to ensure they are registered with Base
    from tweetcast.models import Base  # noqa: F401

    Base.metadata.create_all(bind=engine)
