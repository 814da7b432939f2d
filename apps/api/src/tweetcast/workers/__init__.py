"""
Workers for the Tweetcast job pipeline.

This module provides:
- WorkerExecutor: leases and runs jobs of one type with bounded concurrency
- WorkerPool: one executor per job type, with fatal error supervision
- Stage routines: fetch, analyze, synthesize and assemble
- Celery app for periodic job store maintenance

Stage routines are idempotent: a retried attempt overwrites what an earlier
attempt wrote.
"""

from tweetcast.workers.executor import JobContext, Routine, WorkerExecutor
from tweetcast.workers.pool import WorkerPool
from tweetcast.workers.stages import (
    AnalyzeEmotionsStage,
    AssemblePodcastStage,
    FetchTweetsStage,
    GenerateAudioStage,
    StageRoutine,
)

__all__ = [
    # Execution
    "JobContext",
    "Routine",
    "WorkerExecutor",
    "WorkerPool",
    # Stage routines
    "StageRoutine",
    "FetchTweetsStage",
    "AnalyzeEmotionsStage",
    "GenerateAudioStage",
    "AssemblePodcastStage",
]
