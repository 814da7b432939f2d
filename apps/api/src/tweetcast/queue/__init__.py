"""
Job queue: registry, stores and the producer-facing queue manager.
"""

from tweetcast.queue.manager import JobHandle, QueueManager
from tweetcast.queue.registry import (
    PIPELINE_REGISTRY,
    JobTypeConfig,
    PipelineRegistry,
    RetentionPolicy,
    RetryPolicy,
    build_default_registry,
)
from tweetcast.queue.sql_store import SqlJobStore
from tweetcast.queue.store import (
    InMemoryJobStore,
    JobCounts,
    JobSnapshot,
    JobStore,
    Lease,
    NewJob,
)

__all__ = [
    "PIPELINE_REGISTRY",
    "InMemoryJobStore",
    "JobCounts",
    "JobHandle",
    "JobSnapshot",
    "JobStore",
    "JobTypeConfig",
    "Lease",
    "NewJob",
    "PipelineRegistry",
    "QueueManager",
    "RetentionPolicy",
    "RetryPolicy",
    "SqlJobStore",
    "build_default_registry",
]
