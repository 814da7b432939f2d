"""
Pydantic schemas for API request/response validation and job payloads.

This module exports all schemas used for data validation and serialization
in the Tweetcast API endpoints and by the job queue.
"""

from tweetcast.schemas.common import ErrorDetail, ErrorResponse, HealthResponse
from tweetcast.schemas.job import (
    CleanResponse,
    JobCreate,
    JobEnqueuedResponse,
    JobResponse,
    QueueControlResponse,
    QueueCountsResponse,
    QueueStatsResponse,
)
from tweetcast.schemas.payloads import (
    AnalyzeEmotionsPayload,
    AssemblePodcastPayload,
    AudioSegment,
    Chapter,
    DateRange,
    FetchTweetsPayload,
    GenerateAudioPayload,
    PodcastMetadata,
    SegmentMetadata,
    TweetFilters,
    VoiceParameters,
)

__all__ = [
    # Common
    "ErrorResponse",
    "ErrorDetail",
    "HealthResponse",
    # Job and queue
    "JobCreate",
    "JobEnqueuedResponse",
    "JobResponse",
    "QueueCountsResponse",
    "QueueStatsResponse",
    "QueueControlResponse",
    "CleanResponse",
    # Payloads
    "DateRange",
    "TweetFilters",
    "FetchTweetsPayload",
    "AnalyzeEmotionsPayload",
    "VoiceParameters",
    "SegmentMetadata",
    "AudioSegment",
    "GenerateAudioPayload",
    "Chapter",
    "PodcastMetadata",
    "AssemblePodcastPayload",
]
