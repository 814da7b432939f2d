"""
Pydantic schemas for job payloads.

Each job type has one payload model. The queue manager validates producer
input against it before anything is persisted, and the stage routine
re-parses the stored JSON into the same model before executing.
"""

import re
from datetime import UTC, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tweetcast.models.enums import SegmentType, SourceType

TWEET_STATUS_URL = re.compile(
    r"^https?://(?:www\.|mobile\.)?(?:twitter\.com|x\.com)/"
    r"(?:[A-Za-z0-9_]{1,15}|i/web)/status(?:es)?/(\d+)",
    re.IGNORECASE,
)


def tweet_id_from_url(url: str) -> str | None:
    """Return the tweet id of a status URL, or None if it is not one."""
    match = TWEET_STATUS_URL.match(url.strip())
    return match.group(1) if match else None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class PayloadModel(BaseModel):
    """Base for job payloads: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# fetch_tweets
# =============================================================================


class DateRange(PayloadModel):
    """Inclusive publication window for fetched posts."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("date_range.start must not be after date_range.end")
        return self


class TweetFilters(PayloadModel):
    """
    Optional filter set for a fetch.

    Attributes:
        include_retweets: Keep retweets (excluded by default)
        include_replies: Keep replies (excluded by default)
        minimum_likes: Drop posts with fewer likes
        date_range: Only posts published inside this window
        exclude_keywords: Drop posts containing any of these (case-insensitive)
    """

    include_retweets: bool = False
    include_replies: bool = False
    minimum_likes: int | None = Field(default=None, ge=0)
    date_range: DateRange | None = None
    exclude_keywords: list[str] = Field(default_factory=list)


class FetchTweetsPayload(PayloadModel):
    """Payload for ``fetch_tweets``."""

    podcast_id: UUID
    source_type: SourceType
    source_value: str = Field(min_length=1, max_length=255)
    filters: TweetFilters | None = None

    @field_validator("source_value")
    @classmethod
    def strip_source_value(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("source_value must not be blank")
        return value

    @model_validator(mode="after")
    def check_thread_url(self) -> "FetchTweetsPayload":
        if self.source_type == SourceType.URL and tweet_id_from_url(self.source_value) is None:
            raise ValueError("source_value must be a tweet status URL for url sources")
        return self


# =============================================================================
# analyze_emotions
# =============================================================================


class AnalyzeEmotionsPayload(PayloadModel):
    """Payload for ``analyze_emotions``. Post ids are processed independently."""

    podcast_id: UUID
    tweet_ids: list[str] = Field(min_length=1)

    @field_validator("tweet_ids")
    @classmethod
    def no_blank_ids(cls, value: list[str]) -> list[str]:
        if any(not tweet_id.strip() for tweet_id in value):
            raise ValueError("tweet_ids must not contain blank ids")
        return value


# =============================================================================
# generate_audio
# =============================================================================


class VoiceParameters(PayloadModel):
    """ElevenLabs voice identity and settings for one segment."""

    voice_id: str = Field(min_length=1)
    stability: float = Field(ge=0.0, le=1.0)
    similarity_boost: float = Field(ge=0.0, le=1.0)
    style: float = Field(ge=0.0, le=1.0)
    use_speaker_boost: bool


class SegmentMetadata(PayloadModel):
    """Where a tweet segment's text came from."""

    tweet_id: str | None = None
    author: str | None = None
    timestamp: datetime | None = None


class AudioSegment(PayloadModel):
    """One narration segment; produces exactly one audio artifact."""

    id: str | None = None
    type: SegmentType
    text: str = Field(min_length=1)
    voice_params: VoiceParameters
    metadata: SegmentMetadata | None = None


class GenerateAudioPayload(PayloadModel):
    """Payload for ``generate_audio``. Segment order is output order."""

    podcast_id: UUID
    segments: list[AudioSegment] = Field(min_length=1)


# =============================================================================
# assemble_podcast
# =============================================================================


class Chapter(PayloadModel):
    """Chapter mark embedded in the assembled audio."""

    start_time: float = Field(ge=0, description="Seconds from the start")
    title: str = Field(min_length=1)
    tweet_id: str | None = None


class PodcastMetadata(PayloadModel):
    """Descriptive tags written into the assembled audio."""

    title: str = Field(min_length=1)
    description: str | None = None
    author: str = Field(min_length=1)
    chapters: list[Chapter] = Field(default_factory=list)


class AssemblePodcastPayload(PayloadModel):
    """Payload for ``assemble_podcast``. Artifact order is playback order."""

    podcast_id: UUID
    audio_files: list[str] = Field(min_length=1)
    metadata: PodcastMetadata
