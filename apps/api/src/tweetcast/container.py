"""
Pipeline services container.

Builds the long-lived service objects in dependency order and tears them
down in reverse:

    settings -> engine/session factory -> job store -> queue manager
             -> collaborators -> stage routines -> worker pool

Shutdown: stop leasing -> drain in-flight jobs -> close store -> dispose
engine.

The API process builds the container without workers (it only enqueues
and inspects); the worker process builds it with workers.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.database import create_db_engine, create_session_factory
from tweetcast.integrations.elevenlabs_client import ElevenLabsClient
from tweetcast.integrations.ffmpeg_client import FFmpegClient
from tweetcast.integrations.openai_client import OpenAIClient
from tweetcast.integrations.storage_client import StorageClient
from tweetcast.integrations.twitter_client import TwitterClient
from tweetcast.models.enums import JobType
from tweetcast.queue.manager import QueueManager
from tweetcast.queue.registry import PIPELINE_REGISTRY, PipelineRegistry
from tweetcast.queue.sql_store import SqlJobStore
from tweetcast.queue.store import InMemoryJobStore, JobStore
from tweetcast.services.audio_assembly import FFmpegAudioAssembler
from tweetcast.services.collaborators import (
    AudioAssembler,
    EmotionClassifier,
    SocialMediaClient,
    SpeechSynthesizer,
)
from tweetcast.services.emotion_analysis import OpenAIEmotionClassifier
from tweetcast.services.speech import ElevenLabsSpeechSynthesizer
from tweetcast.services.tweet_source import TwitterTweetSource
from tweetcast.workers.executor import Routine
from tweetcast.workers.pool import WorkerPool
from tweetcast.workers.stages import (
    AnalyzeEmotionsStage,
    AssemblePodcastStage,
    FetchTweetsStage,
    GenerateAudioStage,
)

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """The external collaborators the stage routines depend on."""

    social: SocialMediaClient
    classifier: EmotionClassifier
    synthesizer: SpeechSynthesizer
    assembler: AudioAssembler

    @classmethod
    def from_settings(cls, settings: Settings) -> "Collaborators":
        """Production adapters: Twitter, OpenAI, ElevenLabs, S3 and ffmpeg."""
        storage = StorageClient(settings=settings)
        return cls(
            social=TwitterTweetSource(TwitterClient(settings=settings)),
            classifier=OpenAIEmotionClassifier(OpenAIClient(settings=settings), settings=settings),
            synthesizer=ElevenLabsSpeechSynthesizer(
                ElevenLabsClient(settings=settings),
                storage,
            ),
            assembler=FFmpegAudioAssembler(storage, FFmpegClient(settings=settings)),
        )


def build_job_store(
    settings: Settings,
    session_factory: sessionmaker[Session],
) -> JobStore:
    if settings.job_store_backend == "memory":
        return InMemoryJobStore()
    return SqlJobStore(session_factory, poll_interval=settings.worker_poll_interval_seconds)


def build_routines(
    session_factory: sessionmaker[Session],
    collaborators: Collaborators,
    settings: Settings,
) -> dict[JobType, Routine]:
    return {
        JobType.FETCH_TWEETS: FetchTweetsStage(
            session_factory,
            collaborators.social,
            max_results=settings.twitter_max_results,
        ),
        JobType.ANALYZE_EMOTIONS: AnalyzeEmotionsStage(
            session_factory,
            collaborators.classifier,
            max_parallel=settings.emotion_max_parallel,
        ),
        JobType.GENERATE_AUDIO: GenerateAudioStage(
            session_factory,
            collaborators.synthesizer,
        ),
        JobType.ASSEMBLE_PODCAST: AssemblePodcastStage(
            session_factory,
            collaborators.assembler,
            fallback_seconds=settings.fallback_segment_duration_seconds,
        ),
    }


class PipelineServices:
    """
    Explicitly constructed set of pipeline services.

    Example:
        ```python
        services = PipelineServices.build(settings, with_workers=True)
        services.start_workers()
        ...
        services.shutdown()
        ```
    """

    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        session_factory: sessionmaker[Session],
        store: JobStore,
        manager: QueueManager,
        pool: WorkerPool | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.store = store
        self.manager = manager
        self.pool = pool
        self._shut_down = False

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        engine: Engine | None = None,
        store: JobStore | None = None,
        registry: PipelineRegistry = PIPELINE_REGISTRY,
        collaborators: Collaborators | None = None,
        with_workers: bool = False,
        worker_id: str | None = None,
    ) -> "PipelineServices":
        """
        Build the container.

        Args:
            settings: Application settings (defaults to get_settings())
            engine: Existing engine (a new one is created otherwise)
            store: Existing job store (built from settings otherwise)
            registry: Job type configuration
            collaborators: Stage collaborators (production adapters otherwise)
            with_workers: Also build the worker pool
            worker_id: Lease owner id for this process's executors
        """
        settings = settings or get_settings()
        engine = engine or create_db_engine(settings=settings)
        session_factory = create_session_factory(engine)
        store = store or build_job_store(settings, session_factory)
        manager = QueueManager(store, registry)

        pool = None
        if with_workers:
            collaborators = collaborators or Collaborators.from_settings(settings)
            pool = WorkerPool(
                registry,
                store,
                build_routines(session_factory, collaborators, settings),
                lease_ttl_ms=settings.lease_ttl_ms,
                poll_interval=settings.worker_poll_interval_seconds,
                worker_id=worker_id,
            )
            manager.bind_workers(pool)

        logger.info(
            "Pipeline services built",
            extra={
                "job_store_backend": type(store).__name__,
                "with_workers": with_workers,
            },
        )
        return cls(settings, engine, session_factory, store, manager, pool)

    def start_workers(self) -> None:
        if self.pool is None:
            raise RuntimeError("Pipeline services were built without workers")
        self.pool.start()

    def shutdown(self, timeout: float | None = None) -> bool:
        """
        Stop leasing, drain in-flight jobs, close the store, dispose the engine.

        Returns:
            True if every in-flight job finished within the timeout
        """
        if self._shut_down:
            return True
        self._shut_down = True
        if timeout is None:
            timeout = self.settings.shutdown_timeout_seconds
        drained = self.manager.close_all(timeout)
        self.engine.dispose()
        logger.info("Pipeline services shut down", extra={"drained": drained})
        return drained


__all__ = ["Collaborators", "PipelineServices", "build_job_store", "build_routines"]
