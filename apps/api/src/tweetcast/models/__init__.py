"""
SQLAlchemy ORM Models for Tweetcast.

This module exports all database models and enums used in the application.
"""

from tweetcast.models.base import Base, TimestampMixin, UUIDMixin
from tweetcast.models.enums import (
    BackoffType,
    EmotionType,
    JobPriority,
    JobState,
    JobType,
    PodcastStatus,
    SegmentType,
    SourceType,
    SubscriptionTier,
    UsageAction,
)
from tweetcast.models.job import QueueControl, QueueJob
from tweetcast.models.podcast import Podcast
from tweetcast.models.tweet import PodcastTweet, Tweet
from tweetcast.models.usage_log import UsageLog
from tweetcast.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Models
    "User",
    "Podcast",
    "Tweet",
    "PodcastTweet",
    "UsageLog",
    "QueueJob",
    "QueueControl",
    # Enums
    "BackoffType",
    "EmotionType",
    "JobPriority",
    "JobState",
    "JobType",
    "PodcastStatus",
    "SegmentType",
    "SourceType",
    "SubscriptionTier",
    "UsageAction",
]
