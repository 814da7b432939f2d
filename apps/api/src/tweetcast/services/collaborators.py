"""
Collaborator interfaces used by the stage routines.

Stage routines never talk to Twitter, OpenAI, ElevenLabs, S3 or ffmpeg
directly. They go through these narrow interfaces, which keeps the
routines testable with in-process fakes and lets adapters be swapped
without touching the pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tweetcast.models.enums import EmotionType, SourceType
from tweetcast.schemas.payloads import PodcastMetadata, TweetFilters, VoiceParameters

# =============================================================================
# Value types
# =============================================================================


@dataclass(frozen=True)
class FetchedPost:
    """A post as returned by the social-media client."""

    id: str
    author_username: str
    text: str
    created_at: datetime
    like_count: int = 0
    retweet_count: int = 0
    is_retweet: bool = False
    is_reply: bool = False


@dataclass(frozen=True)
class FetchOptions:
    """
    Options forwarded to the social-media client.

    Attributes:
        user_twitter_id: Account id of the podcast owner (timeline source)
        max_results: Upper bound on returned posts
        filters: Retweet/reply exclusion and date range are applied
            upstream; the rest is applied locally by the fetch stage
    """

    user_twitter_id: str | None = None
    max_results: int = 50
    filters: TweetFilters = field(default_factory=TweetFilters)


@dataclass(frozen=True)
class EmotionLabel:
    """Classifier output for one post."""

    label: EmotionType
    confidence: float
    indicators: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AudioArtifact:
    """A synthesized audio segment."""

    locator: str
    duration_ms: int | None = None


@dataclass(frozen=True)
class AssembledAudio:
    """
    Output of concatenation.

    Attributes:
        locator: Where the concatenated file lives
        artifact_durations: Per-input duration in seconds, None if unknown
    """

    locator: str
    artifact_durations: list[float | None] = field(default_factory=list)


# =============================================================================
# Interfaces
# =============================================================================


class SocialMediaClient(ABC):
    """Fetches posts for a podcast source."""

    name = "social_media_client"

    @abstractmethod
    def fetch(
        self,
        source_type: SourceType,
        source_value: str,
        options: FetchOptions,
    ) -> list[FetchedPost]:
        """
        Fetch posts for a source.

        Raises:
            ValidationError: If ``source_value`` cannot be interpreted
        """


class EmotionClassifier(ABC):
    """Labels the emotional tone of a post."""

    name = "emotion_classifier"

    @abstractmethod
    def classify(self, text: str) -> EmotionLabel:
        ...


class SpeechSynthesizer(ABC):
    """Turns text into a stored audio artifact."""

    name = "speech_synthesizer"

    @abstractmethod
    def synthesize(self, text: str, voice: VoiceParameters, key: str) -> AudioArtifact:
        """
        Synthesize and store one segment.

        Args:
            text: Narration text
            voice: Voice id and tuning
            key: Storage key the artifact should be written under
        """


class AudioAssembler(ABC):
    """Builds the final podcast file from segment artifacts."""

    name = "audio_assembler"

    @abstractmethod
    def concatenate(self, locators: list[str], output_key: str) -> AssembledAudio:
        ...

    @abstractmethod
    def tag(self, locator: str, metadata: PodcastMetadata) -> str:
        """Write title, author, description and chapters into the file."""

    @abstractmethod
    def normalize(self, locator: str) -> str:
        """Loudness-normalize the file and return its final locator."""


def describe(collaborator: Any) -> str:
    """Name used for a collaborator in error messages."""
    return getattr(collaborator, "name", type(collaborator).__name__)


__all__ = [
    "AssembledAudio",
    "AudioArtifact",
    "AudioAssembler",
    "EmotionClassifier",
    "EmotionLabel",
    "FetchOptions",
    "FetchedPost",
    "SocialMediaClient",
    "SpeechSynthesizer",
    "describe",
]
