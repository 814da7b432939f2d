"""
FastAPI dependency injection functions.

Request handlers never build services themselves; everything comes from
the PipelineServices container attached to the application state during
startup.
"""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tweetcast.container import PipelineServices
from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import StoreError
from tweetcast.queue.manager import QueueManager


def get_services(request: Request) -> PipelineServices:
    """
    Dependency returning the application's service container.

    Raises:
        StoreError: If the application has not finished starting up
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise StoreError("Pipeline services are not available")
    return services


def get_queue_manager(
    services: Annotated[PipelineServices, Depends(get_services)],
) -> QueueManager:
    """Dependency returning the queue manager."""
    return services.manager


def get_db(
    services: Annotated[PipelineServices, Depends(get_services)],
) -> Generator[Session, None, None]:
    """
    Dependency that provides a database session for a request.

    Yields a session and ensures it is closed after the request completes.

    Example:
        ```python
        @router.get("/health")
        def health(db: Session = Depends(get_db)):
            db.execute(text("SELECT 1"))
        ```
    """
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


# Type aliases for cleaner dependency injection
Services = Annotated[PipelineServices, Depends(get_services)]
Manager = Annotated[QueueManager, Depends(get_queue_manager)]
DbSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
