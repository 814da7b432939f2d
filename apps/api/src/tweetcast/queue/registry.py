"""
Pipeline registry: static, validated configuration per job type.

Every job type is declared here once with its retry policy, retention
policy, worker concurrency cap, default priority and payload schema. The
configuration is frozen; executors and the queue manager only read it.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tweetcast.core.exceptions import NotFoundError
from tweetcast.models.enums import BackoffType, JobPriority, JobType
from tweetcast.schemas.payloads import (
    AnalyzeEmotionsPayload,
    AssemblePodcastPayload,
    FetchTweetsPayload,
    GenerateAudioPayload,
    PayloadModel,
)


class RetryPolicy(BaseModel):
    """
    Retry/backoff policy.

    Attributes:
        max_attempts: Total attempts allowed, including the first
        backoff: Delay shape between attempts
        base_delay_ms: Delay before the first retry
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(ge=1)
    backoff: BackoffType = BackoffType.EXPONENTIAL
    base_delay_ms: int = Field(ge=0)

    def delay_for(self, attempts_made: int) -> int:
        """
        Delay in ms before the next attempt, after ``attempts_made`` failures.

        Fixed backoff always waits ``base_delay_ms``; exponential waits
        ``base_delay_ms * 2 ** (attempts_made - 1)`` with no upper bound.
        """
        if self.backoff == BackoffType.FIXED:
            return self.base_delay_ms
        return self.base_delay_ms * (2 ** max(attempts_made - 1, 0))


class RetentionPolicy(BaseModel):
    """How many terminal jobs of a type are kept before the oldest are evicted."""

    model_config = ConfigDict(frozen=True)

    keep_completed: int = Field(ge=0)
    keep_failed: int = Field(ge=0)


class JobTypeConfig(BaseModel):
    """Full static configuration for one job type."""

    model_config = ConfigDict(frozen=True)

    job_type: JobType
    retry: RetryPolicy
    retention: RetentionPolicy
    concurrency: int = Field(ge=1)
    default_priority: int = JobPriority.MEDIUM
    payload_model: type[PayloadModel]


class PipelineRegistry(BaseModel):
    """Closed mapping of job type to configuration."""

    model_config = ConfigDict(frozen=True)

    configs: dict[JobType, JobTypeConfig]

    @model_validator(mode="after")
    def check_keys(self) -> "PipelineRegistry":
        for job_type, config in self.configs.items():
            if config.job_type != job_type:
                raise ValueError(f"Config for {job_type.value} declares {config.job_type.value}")
        return self

    def get(self, job_type: JobType | str) -> JobTypeConfig:
        """
        Look up a job type's configuration.

        Raises:
            NotFoundError: If the type is not registered
        """
        try:
            key = JobType(job_type)
            return self.configs[key]
        except (ValueError, KeyError):
            raise NotFoundError(resource_type="Queue", resource_id=str(job_type)) from None

    def job_types(self) -> list[JobType]:
        return list(self.configs)

    def all(self) -> list[JobTypeConfig]:
        return list(self.configs.values())


def build_default_registry() -> PipelineRegistry:
    """The production pipeline: four job types with their tuned policies."""
    return PipelineRegistry(
        configs={
            JobType.FETCH_TWEETS: JobTypeConfig(
                job_type=JobType.FETCH_TWEETS,
                retry=RetryPolicy(max_attempts=3, base_delay_ms=1000),
                retention=RetentionPolicy(keep_completed=100, keep_failed=500),
                concurrency=5,
                payload_model=FetchTweetsPayload,
            ),
            JobType.ANALYZE_EMOTIONS: JobTypeConfig(
                job_type=JobType.ANALYZE_EMOTIONS,
                retry=RetryPolicy(max_attempts=3, base_delay_ms=5000),
                retention=RetentionPolicy(keep_completed=100, keep_failed=500),
                concurrency=3,
                payload_model=AnalyzeEmotionsPayload,
            ),
            JobType.GENERATE_AUDIO: JobTypeConfig(
                job_type=JobType.GENERATE_AUDIO,
                retry=RetryPolicy(max_attempts=3, base_delay_ms=5000),
                retention=RetentionPolicy(keep_completed=50, keep_failed=200),
                concurrency=2,
                payload_model=GenerateAudioPayload,
            ),
            JobType.ASSEMBLE_PODCAST: JobTypeConfig(
                job_type=JobType.ASSEMBLE_PODCAST,
                retry=RetryPolicy(max_attempts=3, base_delay_ms=2000),
                retention=RetentionPolicy(keep_completed=50, keep_failed=200),
                concurrency=2,
                default_priority=JobPriority.LOW,
                payload_model=AssemblePodcastPayload,
            ),
        }
    )


PIPELINE_REGISTRY = build_default_registry()
