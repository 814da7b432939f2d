"""
Enum definitions for Tweetcast models and schemas.

These enums define the valid values for status fields and type fields
throughout the application. They are used by SQLAlchemy models, Pydantic
schemas and the job queue for consistent validation.
"""

import enum


class JobType(str, enum.Enum):
    """
    Pipeline job types, one queue and one worker executor each.

    Attributes:
        FETCH_TWEETS: Collect posts from a social-media source
        ANALYZE_EMOTIONS: Label each collected post with an emotion
        GENERATE_AUDIO: Synthesize one audio artifact per narration segment
        ASSEMBLE_PODCAST: Concatenate, tag and normalize the final episode
    """

    FETCH_TWEETS = "fetch_tweets"
    ANALYZE_EMOTIONS = "analyze_emotions"
    GENERATE_AUDIO = "generate_audio"
    ASSEMBLE_PODCAST = "assemble_podcast"


class JobState(str, enum.Enum):
    """
    Job lifecycle states.

    Attributes:
        WAITING: Ready to be leased
        ACTIVE: Leased by a worker and executing
        DELAYED: Waiting for retry backoff to elapse
        COMPLETED: Finished successfully (terminal)
        FAILED: Failed on every allowed attempt (terminal)
    """

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the job can no longer change state."""
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobPriority(enum.IntEnum):
    """
    Conventional priority levels. Any integer is accepted; higher runs first.
    """

    LOW = 1
    MEDIUM = 5
    HIGH = 10


class BackoffType(str, enum.Enum):
    """Retry delay shape."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class PodcastStatus(str, enum.Enum):
    """
    Podcast lifecycle status values.

    Attributes:
        PROCESSING: Pipeline running (initial state)
        COMPLETED: Assembly finished, audio available
        FAILED: Marked failed by an operator
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceType(str, enum.Enum):
    """Where a podcast's posts come from."""

    TIMELINE = "timeline"
    USERNAME = "username"
    HASHTAG = "hashtag"
    URL = "url"


class SegmentType(str, enum.Enum):
    """Narration segment kinds."""

    INTRO = "intro"
    TWEET = "tweet"
    TRANSITION = "transition"
    OUTRO = "outro"


class EmotionType(str, enum.Enum):
    """Emotion labels produced by the classifier."""

    NEUTRAL = "neutral"
    EXCITED = "excited"
    ANGRY = "angry"
    SAD = "sad"
    SARCASTIC = "sarcastic"
    HUMOROUS = "humorous"
    URGENT = "urgent"
    THOUGHTFUL = "thoughtful"


class SubscriptionTier(str, enum.Enum):
    """User subscription tiers."""

    FREE = "free"
    PRO = "pro"


class UsageAction(str, enum.Enum):
    """Actions recorded in usage logs."""

    TWEETS_FETCHED = "tweets_fetched"
    AUDIO_GENERATED = "audio_generated"
    PODCAST_ASSEMBLED = "podcast_assembled"
