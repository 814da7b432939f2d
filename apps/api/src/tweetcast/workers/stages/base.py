"""
Base class for stage routines.

A stage routine is the callable an executor runs for each leased job. It
re-parses the stored payload, does the stage's work through its
collaborators and returns the JSON-serializable job result.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID

import pydantic
from sqlalchemy.orm import Session, sessionmaker

from tweetcast.core.database import session_scope
from tweetcast.core.exceptions import (
    CollaboratorError,
    NotFoundError,
    TweetcastException,
    ValidationError,
)
from tweetcast.models import Podcast, UsageLog
from tweetcast.models.enums import JobType, UsageAction
from tweetcast.schemas.payloads import PayloadModel
from tweetcast.services.collaborators import describe
from tweetcast.workers.executor import JobContext

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=PayloadModel)
T = TypeVar("T")


class StageRoutine(ABC, Generic[P]):
    """
    One pipeline stage.

    Subclasses set ``job_type`` and ``payload_model`` and implement ``run``.
    Errors from collaborators are wrapped in CollaboratorError so the job's
    failure reason names the stage and the collaborator; NotFoundError and
    ValidationError pass through unchanged.
    """

    job_type: ClassVar[JobType]
    payload_model: ClassVar[type[PayloadModel]]

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def __call__(self, payload: dict[str, Any], ctx: JobContext) -> dict[str, Any]:
        try:
            model = self.payload_model.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Stored payload for {self.job_type.value} is invalid: {e}",
                field="payload",
            ) from e
        return self.run(model, ctx)  # type: ignore[arg-type]

    @abstractmethod
    def run(self, payload: P, ctx: JobContext) -> dict[str, Any]:
        """Execute the stage and return the job result."""

    def session(self):
        return session_scope(self._session_factory)

    def call(
        self,
        collaborator: Any,
        fn: Callable[..., T],
        *args: Any,
        podcast_id: str | None = None,
        **kwargs: Any,
    ) -> T:
        """
        Invoke a collaborator method with stage-level error wrapping.

        Raises:
            CollaboratorError: If the collaborator fails
        """
        try:
            return fn(*args, **kwargs)
        except (NotFoundError, ValidationError, CollaboratorError):
            raise
        except Exception as e:
            if not isinstance(e, TweetcastException):
                logger.exception(
                    f"{describe(collaborator)} raised in {self.job_type.value}",
                    extra={"job_type": self.job_type.value, "podcast_id": podcast_id},
                )
            raise CollaboratorError(
                stage=self.job_type.value,
                collaborator=describe(collaborator),
                original=e,
                podcast_id=podcast_id,
            ) from e

    @staticmethod
    def get_podcast(db: Session, podcast_id: UUID) -> Podcast:
        """
        Raises:
            NotFoundError: If the podcast does not exist
        """
        podcast = db.get(Podcast, podcast_id)
        if podcast is None:
            raise NotFoundError(resource_type="Podcast", resource_id=str(podcast_id))
        return podcast

    @staticmethod
    def log_usage(
        db: Session,
        user_id: UUID,
        action: UsageAction,
        credits_used: int = 1,
    ) -> None:
        db.add(UsageLog(user_id=user_id, action=action.value, credits_used=credits_used))


__all__ = ["StageRoutine"]
