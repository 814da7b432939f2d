"""
Custom exception classes for the Tweetcast application.

These exceptions provide structured error handling for the API, the job
store and the worker executors. Each carries a machine-readable code and an
HTTP status so the API layer can render it directly.
"""

from typing import Any


class TweetcastException(Exception):
    """
    Base exception for all Tweetcast-specific errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code for client handling
        details: Additional error details (optional)
        status_code: HTTP status code to return (default: 500)
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int = 500,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(TweetcastException):
    """
    Raised when a requested resource is not found.

    Maps to HTTP 404 Not Found. Covers podcasts, users, tweets, jobs and
    unknown job types (queues).
    """

    def __init__(
        self,
        resource_type: str,
        resource_id: str | None = None,
        message: str | None = None,
    ) -> None:
        """
        Initialize NotFoundError.

        Args:
            resource_type: Type of resource (e.g., "Podcast", "Job", "Queue")
            resource_id: ID of the resource that was not found
            message: Custom error message (optional)
        """
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class ValidationError(TweetcastException):
    """
    Raised when a payload or argument fails validation.

    Maps to HTTP 422 Unprocessable Entity. Enqueue raises this before any
    job record exists, so it is never retried.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=error_details,
            status_code=422,
        )


class ConflictError(TweetcastException):
    """
    Raised when an operation conflicts with the current state.

    Maps to HTTP 409 Conflict.
    """

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        if resource_type:
            error_details["resource_type"] = resource_type

        super().__init__(
            message=message,
            code="CONFLICT",
            details=error_details,
            status_code=409,
        )


class LeaseLostError(ConflictError):
    """
    Raised when a worker resolves a job whose lease it no longer holds.

    Happens when a lease expired and the job was reclaimed by the store
    before the original holder finished.
    """

    def __init__(self, job_id: str, job_type: str | None = None) -> None:
        super().__init__(
            message=f"Lease on job '{job_id}' is no longer held",
            resource_type="Job",
            details={"job_id": job_id, "job_type": job_type},
        )
        self.code = "LEASE_LOST"
        self.job_id = job_id


class ExternalServiceError(TweetcastException):
    """
    Raised when an external service call fails.

    Maps to HTTP 502 Bad Gateway.

    Used for errors from Twitter, OpenAI, ElevenLabs, S3 and ffmpeg.
    """

    def __init__(
        self,
        service: str,
        message: str,
        original_error: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        """
        Initialize ExternalServiceError.

        Args:
            service: Name of the external service
            message: Description of the error
            original_error: Original error message from the service
            retry_after: Seconds to wait before retrying (optional)
        """
        details: dict[str, Any] = {"service": service}
        if original_error:
            details["original_error"] = original_error
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            code="EXTERNAL_SERVICE_ERROR",
            details=details,
            status_code=502,
        )
        self.service = service


class RateLimitError(TweetcastException):
    """Raised when an upstream rate limit is exceeded. Maps to HTTP 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            status_code=429,
        )


class PipelineError(TweetcastException):
    """
    Raised when a pipeline stage fails.

    Maps to HTTP 500 Internal Server Error.

    Attributes:
        stage: Job type whose stage routine failed
    """

    def __init__(
        self,
        message: str,
        stage: str,
        podcast_id: str | None = None,
        details: dict[str, Any] | None = None,
        code: str = "PIPELINE_ERROR",
    ) -> None:
        """
        Initialize PipelineError.

        Args:
            message: Description of the pipeline error
            stage: Pipeline stage where the error occurred
            podcast_id: ID of the podcast being processed
            details: Additional error context
            code: Machine-readable error code
        """
        error_details = details or {}
        error_details["stage"] = stage
        if podcast_id:
            error_details["podcast_id"] = podcast_id

        super().__init__(
            message=message,
            code=code,
            details=error_details,
            status_code=500,
        )
        self.stage = stage
        self.podcast_id = podcast_id


class CollaboratorError(PipelineError):
    """
    Raised when an external collaborator fails inside a stage routine.

    Wraps the original error with the stage and collaborator names so the
    job's failure reason says where the failure happened.
    """

    def __init__(
        self,
        stage: str,
        collaborator: str,
        original: Exception,
        podcast_id: str | None = None,
    ) -> None:
        super().__init__(
            message=f"{stage}: {collaborator} failed: {original}",
            stage=stage,
            podcast_id=podcast_id,
            details={
                "collaborator": collaborator,
                "original_error": str(original),
                "error_type": type(original).__name__,
            },
            code="COLLABORATOR_ERROR",
        )
        self.collaborator = collaborator
        self.original = original


class ExhaustedRetriesError(PipelineError):
    """Raised when a job has failed on every one of its allowed attempts."""

    def __init__(
        self,
        job_id: str,
        stage: str,
        attempts: int,
        last_reason: str | None = None,
    ) -> None:
        super().__init__(
            message=f"Job '{job_id}' failed after {attempts} attempt(s): {last_reason}",
            stage=stage,
            details={"job_id": job_id, "attempts": attempts},
            code="EXHAUSTED_RETRIES",
        )
        self.job_id = job_id
        self.attempts = attempts
        self.last_reason = last_reason


class StoreError(TweetcastException):
    """
    Raised when the job store is unreachable or a store operation fails.

    Maps to HTTP 503 Service Unavailable. Fatal to a worker executor's
    leasing loop.
    """

    def __init__(self, message: str, original_error: str | None = None) -> None:
        details: dict[str, Any] = {}
        if original_error:
            details["original_error"] = original_error

        super().__init__(
            message=message,
            code="STORE_UNAVAILABLE",
            details=details,
            status_code=503,
        )
