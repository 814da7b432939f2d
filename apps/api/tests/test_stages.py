"""
Tests for the four stage routines.

Routines are called directly with a JobContext over a real lease, so
progress reporting goes through the store exactly as in a worker.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from tweetcast.core.exceptions import CollaboratorError, NotFoundError, ValidationError
from tweetcast.models import Podcast, PodcastStatus, PodcastTweet, Tweet, UsageLog
from tweetcast.models.enums import BackoffType, JobType, UsageAction
from tweetcast.queue.store import InMemoryJobStore, NewJob
from tweetcast.schemas.payloads import TweetFilters
from tweetcast.services.collaborators import FetchedPost
from tweetcast.workers.executor import JobContext
from tweetcast.workers.stages import (
    AnalyzeEmotionsStage,
    AssemblePodcastStage,
    FetchTweetsStage,
    GenerateAudioStage,
)
from tweetcast.workers.stages.assemble_podcast import estimate_duration
from tweetcast.workers.stages.fetch_tweets import apply_local_filters
from tweetcast.workers.stages.generate_audio import segment_key


@pytest.fixture
def context(store: InMemoryJobStore) -> Callable[[JobType, dict[str, Any]], JobContext]:
    """Factory that enqueues a job, leases it and wraps the lease."""

    def _context(job_type: JobType, payload: dict[str, Any]) -> JobContext:
        store.add(
            NewJob(
                id=str(uuid4()),
                job_type=job_type,
                priority=5,
                payload=payload,
                max_attempts=3,
                backoff_type=BackoffType.FIXED,
                backoff_delay_ms=0,
                keep_completed=10,
                keep_failed=10,
            )
        )
        lease = store.lease(job_type, "test-worker", 60_000)
        return JobContext(lease, store)

    return _context


def usage_actions(db: Session) -> list[tuple[str, int]]:
    return [(log.action, log.credits_used) for log in db.scalars(select(UsageLog)).all()]


class TestFetchTweetsStage:
    """Tests for the fetch_tweets routine."""

    def test_fetch_caches_and_links_posts(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        social: Any,
        context: Callable[..., JobContext],
        store: InMemoryJobStore,
    ) -> None:
        """Posts are cached, linked in order and counted on the podcast."""
        stage = FetchTweetsStage(session_factory, social, max_results=25)
        ctx = context(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(podcast.id), "source_type": "username", "source_value": "alice"},
        )

        result = stage(ctx.lease.job.payload, ctx)

        assert result == {"tweet_ids": ["3001", "3002", "3003"], "count": 3}
        links = db.scalars(
            select(PodcastTweet)
            .where(PodcastTweet.podcast_id == podcast.id)
            .order_by(PodcastTweet.sequence_order)
        ).all()
        assert [link.tweet_id for link in links] == ["3001", "3002", "3003"]
        assert db.get(Podcast, podcast.id).tweet_count == 3
        assert db.get(Tweet, "3003").like_count == 9
        assert usage_actions(db) == [(UsageAction.TWEETS_FETCHED.value, 1)]
        assert store.get(JobType.FETCH_TWEETS, ctx.job_id).progress == 100

    def test_fetch_passes_owner_and_limits(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = FetchTweetsStage(session_factory, social, max_results=25)
        ctx = context(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(podcast.id), "source_type": "timeline", "source_value": "me"},
        )

        stage(ctx.lease.job.payload, ctx)

        source_type, source_value, options = social.calls[0]
        assert source_type.value == "timeline"
        assert options.user_twitter_id == "1001"
        assert options.max_results == 25

    def test_fetch_applies_filters(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        make_post: Callable[..., FetchedPost],
        context: Callable[..., JobContext],
    ) -> None:
        """Low-like, keyword, retweet and reply posts are dropped."""
        social.posts = [
            make_post("1", "keep me", like_count=10),
            make_post("2", "too quiet", like_count=1),
            make_post("3", "SPOILER alert", like_count=50),
            make_post("4", "a retweet", like_count=50, is_retweet=True),
            make_post("5", "a reply", like_count=50, is_reply=True),
        ]
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(podcast.id),
                "source_type": "hashtag",
                "source_value": "python",
                "filters": {"minimum_likes": 5, "exclude_keywords": ["spoiler"]},
            },
        )

        result = stage(ctx.lease.job.payload, ctx)

        assert result == {"tweet_ids": ["1"], "count": 1}

    def test_fetch_deduplicates_posts(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        make_post: Callable[..., FetchedPost],
        context: Callable[..., JobContext],
    ) -> None:
        social.posts = [make_post("1"), make_post("2"), make_post("1")]
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(podcast.id), "source_type": "username", "source_value": "alice"},
        )

        assert stage(ctx.lease.job.payload, ctx)["tweet_ids"] == ["1", "2"]

    def test_fetch_is_repeatable(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        """A retried fetch does not duplicate cached posts or links."""
        stage = FetchTweetsStage(session_factory, social)
        payload = {
            "podcast_id": str(podcast.id),
            "source_type": "username",
            "source_value": "alice",
        }

        stage(payload, context(JobType.FETCH_TWEETS, payload))
        stage(payload, context(JobType.FETCH_TWEETS, payload))

        assert len(db.scalars(select(Tweet)).all()) == 3
        assert len(db.scalars(select(PodcastTweet)).all()) == 3

    def test_thread_source_keeps_replies(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        make_post: Callable[..., FetchedPost],
        context: Callable[..., JobContext],
    ) -> None:
        social.posts = [make_post("10"), make_post("11", is_reply=True)]
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(podcast.id),
                "source_type": "url",
                "source_value": "https://x.com/alice/status/10",
            },
        )

        assert stage(ctx.lease.job.payload, ctx)["tweet_ids"] == ["10", "11"]

    def test_thread_source_honours_date_range(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        make_post: Callable[..., FetchedPost],
        context: Callable[..., JobContext],
    ) -> None:
        """Thread lookups take no window upstream, so posts outside it are dropped here."""
        social.posts = [
            make_post("10"),
            make_post("11", is_reply=True, minutes=-400 * 24 * 60),
            make_post("12", is_reply=True, minutes=5),
        ]
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(podcast.id),
                "source_type": "url",
                "source_value": "https://x.com/alice/status/10",
                "filters": {
                    "date_range": {
                        "start": "2026-09-01T00:00:00Z",
                        "end": "2026-10-31T00:00:00",
                    }
                },
            },
        )

        assert stage(ctx.lease.job.payload, ctx)["tweet_ids"] == ["10", "12"]

    def test_invalid_thread_url_fails_before_fetching(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(podcast.id),
                "source_type": "url",
                "source_value": "https://example.com/not-a-tweet",
            },
        )

        with pytest.raises(ValidationError):
            stage(ctx.lease.job.payload, ctx)
        assert social.calls == []

    def test_unknown_podcast(
        self,
        session_factory: sessionmaker[Session],
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(uuid4()), "source_type": "username", "source_value": "alice"},
        )

        with pytest.raises(NotFoundError):
            stage(ctx.lease.job.payload, ctx)

    def test_client_failure_names_stage_and_collaborator(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        social.error = RuntimeError("Twitter timeout")
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(
            JobType.FETCH_TWEETS,
            {"podcast_id": str(podcast.id), "source_type": "username", "source_value": "alice"},
        )

        with pytest.raises(CollaboratorError) as exc_info:
            stage(ctx.lease.job.payload, ctx)

        message = str(exc_info.value)
        assert "fetch_tweets" in message
        assert "fake_social" in message
        assert "Twitter timeout" in message

    def test_invalid_stored_payload(
        self,
        session_factory: sessionmaker[Session],
        social: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = FetchTweetsStage(session_factory, social)
        ctx = context(JobType.FETCH_TWEETS, {"podcast_id": "nope"})

        with pytest.raises(ValidationError):
            stage(ctx.lease.job.payload, ctx)


class TestLocalFilters:
    """Tests for filters applied after the upstream fetch."""

    def test_defaults_drop_retweets_and_replies(self, make_post: Callable[..., FetchedPost]) -> None:
        posts = [
            make_post("1"),
            make_post("2", is_retweet=True),
            make_post("3", is_reply=True),
        ]

        assert [p.id for p in apply_local_filters(posts, TweetFilters())] == ["1"]

    def test_includes_when_requested(self, make_post: Callable[..., FetchedPost]) -> None:
        posts = [make_post("1", is_retweet=True), make_post("2", is_reply=True)]
        filters = TweetFilters(include_retweets=True, include_replies=True)

        assert [p.id for p in apply_local_filters(posts, filters)] == ["1", "2"]

    def test_keyword_match_is_case_insensitive(self, make_post: Callable[..., FetchedPost]) -> None:
        posts = [make_post("1", "Crypto giveaway"), make_post("2", "release notes")]
        filters = TweetFilters(exclude_keywords=["CRYPTO", "  "])

        assert [p.id for p in apply_local_filters(posts, filters)] == ["2"]

    def test_date_range_is_inclusive(self, make_post: Callable[..., FetchedPost]) -> None:
        posts = [make_post("1", minutes=-1), make_post("2"), make_post("3", minutes=60)]
        filters = TweetFilters(
            date_range={"start": "2026-10-01T12:00:00Z", "end": "2026-10-01T13:00:00Z"}
        )

        assert [p.id for p in apply_local_filters(posts, filters, thread=True)] == ["2", "3"]


class TestAnalyzeEmotionsStage:
    """Tests for the analyze_emotions routine."""

    def test_labels_are_persisted_in_request_order(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        cached_tweets: list[Tweet],
        classifier: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = AnalyzeEmotionsStage(session_factory, classifier, max_parallel=2)
        ids = ["2002", "2000", "2001"]
        ctx = context(
            JobType.ANALYZE_EMOTIONS,
            {"podcast_id": str(podcast.id), "tweet_ids": ids},
        )

        result = stage(ctx.lease.job.payload, ctx)

        assert result["analyzed"] == 3
        assert [r["tweet_id"] for r in result["results"]] == ids
        assert result["results"][1] == {
            "tweet_id": "2000",
            "emotion_type": "excited",
            "confidence": 0.91,
            "indicators": ["!!!"],
        }
        excited = db.get(Tweet, "2000")
        assert excited.emotion_type == "excited"
        assert excited.emotion_confidence == Decimal("0.91")
        assert excited.emotion_indicators == {"indicators": ["!!!"]}
        assert db.get(Tweet, "2001").emotion_type == "angry"

    def test_duplicate_ids_are_classified_once(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        cached_tweets: list[Tweet],
        classifier: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = AnalyzeEmotionsStage(session_factory, classifier)
        ctx = context(
            JobType.ANALYZE_EMOTIONS,
            {"podcast_id": str(podcast.id), "tweet_ids": ["2000", "2000"]},
        )

        assert stage(ctx.lease.job.payload, ctx)["analyzed"] == 1
        assert len(classifier.calls) == 1

    def test_unknown_tweet_fails_without_classifying(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        cached_tweets: list[Tweet],
        classifier: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = AnalyzeEmotionsStage(session_factory, classifier)
        ctx = context(
            JobType.ANALYZE_EMOTIONS,
            {"podcast_id": str(podcast.id), "tweet_ids": ["2000", "9999"]},
        )

        with pytest.raises(NotFoundError) as exc_info:
            stage(ctx.lease.job.payload, ctx)

        assert "9999" in exc_info.value.message
        assert classifier.calls == []

    def test_classifier_failure_persists_nothing(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        cached_tweets: list[Tweet],
        classifier: Any,
        context: Callable[..., JobContext],
    ) -> None:
        """One failed classification fails the attempt and no label is stored."""
        classifier.fail_on = "outage"
        stage = AnalyzeEmotionsStage(session_factory, classifier)
        ctx = context(
            JobType.ANALYZE_EMOTIONS,
            {"podcast_id": str(podcast.id), "tweet_ids": ["2000", "2001", "2002"]},
        )

        with pytest.raises(CollaboratorError):
            stage(ctx.lease.job.payload, ctx)

        assert all(
            tweet.emotion_type is None for tweet in db.scalars(select(Tweet)).all()
        )


class TestGenerateAudioStage:
    """Tests for the generate_audio routine."""

    def test_segments_are_synthesized_in_order(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        synthesizer: Any,
        voice: dict[str, Any],
        context: Callable[..., JobContext],
    ) -> None:
        stage = GenerateAudioStage(session_factory, synthesizer)
        ctx = context(
            JobType.GENERATE_AUDIO,
            {
                "podcast_id": str(podcast.id),
                "segments": [
                    {"id": "intro", "type": "intro", "text": "Welcome", "voice_params": voice},
                    {
                        "type": "tweet",
                        "text": "We shipped it",
                        "voice_params": voice,
                        "metadata": {"tweet_id": "2000", "author": "alice"},
                    },
                    {"id": "outro", "type": "outro", "text": "Bye", "voice_params": voice},
                ],
            },
        )

        result = stage(ctx.lease.job.payload, ctx)

        pid = str(podcast.id)
        assert result["audio_files"] == [
            f"s3://test-audio/podcasts/{pid}/segments/000-intro.mp3",
            f"s3://test-audio/podcasts/{pid}/segments/001-001.mp3",
            f"s3://test-audio/podcasts/{pid}/segments/002-outro.mp3",
        ]
        assert result["segment_count"] == 3
        assert result["durations_ms"] == [7 * 80, 13 * 80, 3 * 80]
        assert [call[0] for call in synthesizer.calls] == ["Welcome", "We shipped it", "Bye"]
        assert usage_actions(db) == [(UsageAction.AUDIO_GENERATED.value, 3)]

    def test_synthesis_failure(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        synthesizer: Any,
        voice: dict[str, Any],
        context: Callable[..., JobContext],
    ) -> None:
        synthesizer.failures = 1
        stage = GenerateAudioStage(session_factory, synthesizer)
        ctx = context(
            JobType.GENERATE_AUDIO,
            {
                "podcast_id": str(podcast.id),
                "segments": [{"type": "intro", "text": "Welcome", "voice_params": voice}],
            },
        )

        with pytest.raises(CollaboratorError, match="speech service timeout"):
            stage(ctx.lease.job.payload, ctx)

    def test_segment_key(self) -> None:
        assert segment_key("p1", 4, None) == "podcasts/p1/segments/004-004.mp3"
        assert segment_key("p1", 0, "intro") == "podcasts/p1/segments/000-intro.mp3"


class TestAssemblePodcastStage:
    """Tests for the assemble_podcast routine."""

    def payload(self, podcast: Podcast, files: int = 3) -> dict[str, Any]:
        return {
            "podcast_id": str(podcast.id),
            "audio_files": [f"s3://test-audio/seg-{i}.mp3" for i in range(files)],
            "metadata": {
                "title": "Alice's Week",
                "author": "alice",
                "chapters": [{"start_time": 0, "title": "Intro"}],
            },
        }

    def test_assembly_completes_the_podcast(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        assembler: Any,
        context: Callable[..., JobContext],
    ) -> None:
        """Concatenate, tag, normalize, then mark the podcast completed."""
        stage = AssemblePodcastStage(session_factory, assembler)
        ctx = context(JobType.ASSEMBLE_PODCAST, self.payload(podcast))

        result = stage(ctx.lease.job.payload, ctx)

        audio_url = f"s3://test-audio/podcasts/{podcast.id}/final.mp3"
        assert result == {"audio_url": audio_url, "duration": 30, "file_count": 3}
        assert assembler.steps == ["concatenate", "tag", "normalize"]
        assert assembler.metadata.title == "Alice's Week"

        stored = db.get(Podcast, podcast.id)
        assert stored.status == PodcastStatus.COMPLETED
        assert stored.audio_url == audio_url
        assert stored.duration_seconds == 30
        assert usage_actions(db) == [(UsageAction.PODCAST_ASSEMBLED.value, 1)]

    def test_unknown_durations_use_fallback(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        assembler: Any,
        context: Callable[..., JobContext],
    ) -> None:
        assembler.durations = [None, 12.4]
        stage = AssemblePodcastStage(session_factory, assembler, fallback_seconds=30)
        ctx = context(JobType.ASSEMBLE_PODCAST, self.payload(podcast, files=2))

        assert stage(ctx.lease.job.payload, ctx)["duration"] == 42

    def test_reassembly_keeps_podcast_completed(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        assembler: Any,
        context: Callable[..., JobContext],
    ) -> None:
        stage = AssemblePodcastStage(session_factory, assembler)
        stage(self.payload(podcast), context(JobType.ASSEMBLE_PODCAST, self.payload(podcast)))
        assembler.durations = [20.0, 20.0]
        stage(
            self.payload(podcast, files=2),
            context(JobType.ASSEMBLE_PODCAST, self.payload(podcast, files=2)),
        )

        stored = db.get(Podcast, podcast.id)
        assert stored.status == PodcastStatus.COMPLETED
        assert stored.duration_seconds == 40

    def test_assembler_failure_leaves_podcast_processing(
        self,
        session_factory: sessionmaker[Session],
        db: Session,
        podcast: Podcast,
        assembler: Any,
        context: Callable[..., JobContext],
    ) -> None:
        assembler.error = RuntimeError("ffmpeg exited with 1")
        stage = AssemblePodcastStage(session_factory, assembler)
        ctx = context(JobType.ASSEMBLE_PODCAST, self.payload(podcast))

        with pytest.raises(CollaboratorError):
            stage(ctx.lease.job.payload, ctx)

        assert db.get(Podcast, podcast.id).status == PodcastStatus.PROCESSING

    def test_unknown_podcast_fails_before_assembling(
        self,
        session_factory: sessionmaker[Session],
        podcast: Podcast,
        assembler: Any,
        context: Callable[..., JobContext],
    ) -> None:
        payload = self.payload(podcast)
        payload["podcast_id"] = str(uuid4())
        stage = AssemblePodcastStage(session_factory, assembler)

        with pytest.raises(NotFoundError):
            stage(payload, context(JobType.ASSEMBLE_PODCAST, payload))
        assert assembler.steps == []


class TestEstimateDuration:
    """Tests for the duration estimate."""

    def test_sums_known_durations(self) -> None:
        assert estimate_duration([10.2, 20.4], 2) == 31

    def test_missing_entries_use_fallback(self) -> None:
        assert estimate_duration([5.0], 3, fallback_seconds=30) == 65

    def test_never_below_one_second(self) -> None:
        assert estimate_duration([0.2], 1) == 1
