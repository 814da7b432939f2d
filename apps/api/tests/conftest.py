"""
Pytest configuration and fixtures for Tweetcast API tests.

Provides a file-backed SQLite database, job stores driven by a fake clock,
in-process fakes for every stage collaborator and a test client wired to
a prebuilt service container.
"""

import os
import threading
import time
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing application
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JOB_STORE_BACKEND"] = "memory"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["TWITTER_BEARER_TOKEN"] = "test-bearer-token"
os.environ["OPENAI_API_KEY"] = "sk-test-key"
os.environ["ELEVENLABS_API_KEY"] = "test-elevenlabs-key"
os.environ["S3_ACCESS_KEY"] = "test"
os.environ["S3_SECRET_KEY"] = "test"

from tweetcast.container import Collaborators, PipelineServices
from tweetcast.core.config import Settings
from tweetcast.core.database import create_db_engine, create_session_factory, init_db, session_scope
from tweetcast.main import create_app
from tweetcast.models import Podcast, PodcastStatus, SourceType, Tweet, User
from tweetcast.models.enums import BackoffType, EmotionType, JobPriority, JobType
from tweetcast.queue.manager import QueueManager
from tweetcast.queue.registry import (
    PIPELINE_REGISTRY,
    JobTypeConfig,
    PipelineRegistry,
    RetentionPolicy,
    RetryPolicy,
)
from tweetcast.queue.store import InMemoryJobStore, NewJob
from tweetcast.schemas.payloads import PodcastMetadata, VoiceParameters
from tweetcast.services.collaborators import (
    AssembledAudio,
    AudioArtifact,
    AudioAssembler,
    EmotionClassifier,
    EmotionLabel,
    FetchedPost,
    FetchOptions,
    SocialMediaClient,
    SpeechSynthesizer,
)

# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced epoch-millisecond clock for job stores."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at a fixed instant."""
    return FakeClock()


# =============================================================================
# Settings and database
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Provide settings tuned for fast tests."""
    return Settings(
        environment="development",
        database_url=f"sqlite:///{tmp_path / 'tweetcast.db'}",
        job_store_backend="memory",
        worker_poll_interval_seconds=0.05,
        lease_ttl_seconds=30.0,
        shutdown_timeout_seconds=5.0,
        emotion_max_parallel=2,
        fallback_segment_duration_seconds=30,
        clean_grace_ms=60_000,
        twitter_bearer_token="test-bearer-token",
        openai_api_key="sk-test-key",
        elevenlabs_api_key="test-elevenlabs-key",
        s3_access_key="test",
        s3_secret_key="test",
        s3_bucket_audio="test-audio",
    )


@pytest.fixture
def engine(settings: Settings) -> Generator[Engine, None, None]:
    """
    Create the schema in a fresh SQLite file for each test.

    A file database is used so worker threads share one set of tables.
    """
    engine = create_db_engine(settings=settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Provide a session factory bound to the test engine."""
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a database session for assertions."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Domain data
# =============================================================================


@pytest.fixture
def user(session_factory: sessionmaker[Session]) -> User:
    """Create and return a user."""
    with session_scope(session_factory) as session:
        user = User(
            email="alice@example.com",
            twitter_id="1001",
            twitter_username="alice",
            twitter_access_token="test-access-token",
        )
        session.add(user)
    return user


@pytest.fixture
def podcast(session_factory: sessionmaker[Session], user: User) -> Podcast:
    """Create and return a podcast in the processing state."""
    with session_scope(session_factory) as session:
        podcast = Podcast(
            user_id=user.id,
            title="Alice's Week",
            description="Everything alice posted this week",
            source_type=SourceType.USERNAME,
            source_identifier="alice",
            status=PodcastStatus.PROCESSING,
        )
        session.add(podcast)
    return podcast


@pytest.fixture
def cached_tweets(session_factory: sessionmaker[Session]) -> list[Tweet]:
    """Cache three tweets for the emotion stage."""
    created = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
    texts = [
        "We shipped it!!! Huge thanks to the team",
        "Another outage this morning. Not great.",
        "Reading about queue fairness, lots to think about",
    ]
    with session_scope(session_factory) as session:
        tweets = [
            Tweet(
                id=str(2000 + index),
                author_username="alice",
                text=text,
                created_at=created + timedelta(minutes=index),
                like_count=10 * index,
            )
            for index, text in enumerate(texts)
        ]
        session.add_all(tweets)
    return tweets


def build_post(
    post_id: str,
    text: str = "hello world",
    like_count: int = 0,
    is_retweet: bool = False,
    is_reply: bool = False,
    minutes: int = 0,
) -> FetchedPost:
    """Build a post as the social-media client would return it."""
    return FetchedPost(
        id=post_id,
        author_username="alice",
        text=text,
        created_at=datetime(2026, 10, 1, 12, 0, tzinfo=UTC) + timedelta(minutes=minutes),
        like_count=like_count,
        is_retweet=is_retweet,
        is_reply=is_reply,
    )


@pytest.fixture
def make_post() -> Callable[..., FetchedPost]:
    """Factory for fetched posts."""
    return build_post


@pytest.fixture
def voice() -> dict[str, Any]:
    """Provide voice parameters as they appear in a payload."""
    return {
        "voice_id": "voice-narrator",
        "stability": 0.5,
        "similarity_boost": 0.75,
        "style": 0.2,
        "use_speaker_boost": True,
    }


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeSocialMediaClient(SocialMediaClient):
    """Returns a fixed list of posts, or raises a configured error."""

    name = "fake_social"

    def __init__(self, posts: list[FetchedPost] | None = None) -> None:
        self.posts = posts or []
        self.error: Exception | None = None
        self.calls: list[tuple[SourceType, str, FetchOptions]] = []

    def fetch(
        self,
        source_type: SourceType,
        source_value: str,
        options: FetchOptions,
    ) -> list[FetchedPost]:
        self.calls.append((source_type, source_value, options))
        if self.error is not None:
            raise self.error
        return list(self.posts)


class FakeEmotionClassifier(EmotionClassifier):
    """Labels text by keyword; fails for texts containing ``fail_on``."""

    name = "fake_classifier"

    def __init__(self) -> None:
        self.fail_on: str | None = None
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def classify(self, text: str) -> EmotionLabel:
        with self._lock:
            self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise RuntimeError("classifier unavailable")
        if "!!!" in text:
            return EmotionLabel(EmotionType.EXCITED, 0.912, ["!!!"])
        if "outage" in text.lower():
            return EmotionLabel(EmotionType.ANGRY, 0.8, ["outage"])
        return EmotionLabel(EmotionType.THOUGHTFUL, 0.655, [])


class FakeSpeechSynthesizer(SpeechSynthesizer):
    """Stores nothing; fails the first ``failures`` calls."""

    name = "fake_synthesizer"

    def __init__(self) -> None:
        self.failures = 0
        self.calls: list[tuple[str, str, str]] = []

    def synthesize(self, text: str, voice: VoiceParameters, key: str) -> AudioArtifact:
        self.calls.append((text, voice.voice_id, key))
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("speech service timeout")
        return AudioArtifact(locator=f"s3://test-audio/{key}", duration_ms=len(text) * 80)


class FakeAudioAssembler(AudioAssembler):
    """Records each assembly step and returns derived locators."""

    name = "fake_assembler"

    def __init__(self) -> None:
        self.durations: list[float | None] | None = None
        self.error: Exception | None = None
        self.steps: list[str] = []
        self.metadata: PodcastMetadata | None = None

    def concatenate(self, locators: list[str], output_key: str) -> AssembledAudio:
        self.steps.append("concatenate")
        if self.error is not None:
            raise self.error
        durations = self.durations if self.durations is not None else [10.0] * len(locators)
        return AssembledAudio(locator=f"s3://test-audio/{output_key}", artifact_durations=durations)

    def tag(self, locator: str, metadata: PodcastMetadata) -> str:
        self.steps.append("tag")
        self.metadata = metadata
        return locator

    def normalize(self, locator: str) -> str:
        self.steps.append("normalize")
        return locator


@pytest.fixture
def social() -> FakeSocialMediaClient:
    """Provide a social-media fake returning three posts."""
    return FakeSocialMediaClient(
        [
            build_post("3001", "first post", like_count=5),
            build_post("3002", "second post", like_count=1, minutes=1),
            build_post("3003", "third post", like_count=9, minutes=2),
        ]
    )


@pytest.fixture
def classifier() -> FakeEmotionClassifier:
    return FakeEmotionClassifier()


@pytest.fixture
def synthesizer() -> FakeSpeechSynthesizer:
    return FakeSpeechSynthesizer()


@pytest.fixture
def assembler() -> FakeAudioAssembler:
    return FakeAudioAssembler()


@pytest.fixture
def collaborators(
    social: FakeSocialMediaClient,
    classifier: FakeEmotionClassifier,
    synthesizer: FakeSpeechSynthesizer,
    assembler: FakeAudioAssembler,
) -> Collaborators:
    """Bundle the fakes the way the container expects them."""
    return Collaborators(
        social=social,
        classifier=classifier,
        synthesizer=synthesizer,
        assembler=assembler,
    )


# =============================================================================
# Queue
# =============================================================================


@pytest.fixture
def make_registry() -> Callable[..., PipelineRegistry]:
    """
    Factory for registries with fast retry policies.

    Every type gets the same policy; ``backoff_ms=0`` sends failed jobs
    straight back to waiting.
    """

    def _make(
        max_attempts: int = 3,
        backoff: BackoffType = BackoffType.FIXED,
        backoff_ms: int = 0,
        concurrency: int = 2,
        keep_completed: int = 100,
        keep_failed: int = 100,
    ) -> PipelineRegistry:
        return PipelineRegistry(
            configs={
                config.job_type: JobTypeConfig(
                    job_type=config.job_type,
                    retry=RetryPolicy(
                        max_attempts=max_attempts,
                        backoff=backoff,
                        base_delay_ms=backoff_ms,
                    ),
                    retention=RetentionPolicy(
                        keep_completed=keep_completed,
                        keep_failed=keep_failed,
                    ),
                    concurrency=concurrency,
                    default_priority=config.default_priority,
                    payload_model=config.payload_model,
                )
                for config in PIPELINE_REGISTRY.all()
            }
        )

    return _make


@pytest.fixture
def make_job() -> Callable[..., NewJob]:
    """Factory for store-level job records."""

    def _make(
        job_type: JobType = JobType.FETCH_TWEETS,
        priority: int = JobPriority.MEDIUM,
        max_attempts: int = 3,
        backoff_type: BackoffType = BackoffType.FIXED,
        backoff_delay_ms: int = 0,
        keep_completed: int = 100,
        keep_failed: int = 100,
        payload: dict[str, Any] | None = None,
    ) -> NewJob:
        return NewJob(
            id=str(uuid4()),
            job_type=job_type,
            priority=int(priority),
            payload=payload or {"podcast_id": str(uuid4())},
            max_attempts=max_attempts,
            backoff_type=backoff_type,
            backoff_delay_ms=backoff_delay_ms,
            keep_completed=keep_completed,
            keep_failed=keep_failed,
        )

    return _make


@pytest.fixture
def store() -> Generator[InMemoryJobStore, None, None]:
    """Provide an in-memory store on the system clock."""
    store = InMemoryJobStore()
    yield store
    store.close()


@pytest.fixture
def manager(store: InMemoryJobStore) -> QueueManager:
    """Provide a queue manager over the production registry."""
    return QueueManager(store, PIPELINE_REGISTRY)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """
    Poll a condition until it holds or the timeout passes.

    Returns:
        Whether the condition became true
    """

    def _wait(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def services(
    settings: Settings,
    engine: Engine,
    collaborators: Collaborators,
) -> Generator[PipelineServices, None, None]:
    """Provide an API-side service container with an in-memory store."""
    services = PipelineServices.build(
        settings,
        engine=engine,
        store=InMemoryJobStore(),
        collaborators=collaborators,
    )
    yield services
    services.shutdown(timeout=1.0)


@pytest.fixture
def client(services: PipelineServices) -> Generator[TestClient, None, None]:
    """Provide a test client for API testing."""
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client
