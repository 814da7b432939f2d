"""
Tests for the producer-facing queue manager.
"""

from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from tweetcast.core.exceptions import ConflictError, NotFoundError, ValidationError
from tweetcast.models.enums import JobPriority, JobState, JobType
from tweetcast.queue.manager import MAX_PRIORITY, QueueManager
from tweetcast.queue.registry import PIPELINE_REGISTRY
from tweetcast.queue.store import InMemoryJobStore


def valid_payload(job_type: JobType, voice: dict[str, Any]) -> dict[str, Any]:
    podcast_id = str(uuid4())
    if job_type == JobType.FETCH_TWEETS:
        return {"podcast_id": podcast_id, "source_type": "hashtag", "source_value": "python"}
    if job_type == JobType.ANALYZE_EMOTIONS:
        return {"podcast_id": podcast_id, "tweet_ids": ["1", "2"]}
    if job_type == JobType.GENERATE_AUDIO:
        return {
            "podcast_id": podcast_id,
            "segments": [{"type": "intro", "text": "Welcome", "voice_params": voice}],
        }
    return {
        "podcast_id": podcast_id,
        "audio_files": ["s3://test-audio/a.mp3"],
        "metadata": {"title": "Week", "author": "alice"},
    }


@pytest.fixture
def fetch_payload() -> dict[str, Any]:
    return {
        "podcast_id": str(uuid4()),
        "source_type": "username",
        "source_value": "  alice  ",
    }


class TestEnqueue:
    """Tests for payload validation and job creation."""

    def test_enqueue_returns_handle_with_normalized_payload(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        """The stored payload is the validated, JSON-normalized model."""
        handle = manager.enqueue(JobType.FETCH_TWEETS, fetch_payload)

        assert handle.job_type == JobType.FETCH_TWEETS
        assert handle.priority == JobPriority.MEDIUM
        assert handle.payload == {
            "podcast_id": fetch_payload["podcast_id"],
            "source_type": "username",
            "source_value": "alice",
        }

        snapshot = manager.get_job(JobType.FETCH_TWEETS, handle.id)
        assert snapshot.state == JobState.WAITING
        assert snapshot.payload == handle.payload
        assert snapshot.max_attempts == 3
        assert snapshot.attempts_made == 0

    def test_job_ids_are_unique(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        ids = {manager.enqueue("fetch_tweets", fetch_payload).id for _ in range(5)}

        assert len(ids) == 5

    def test_type_default_priority(self, manager: QueueManager) -> None:
        """Assembly jobs default to low priority."""
        handle = manager.enqueue(
            JobType.ASSEMBLE_PODCAST,
            {
                "podcast_id": str(uuid4()),
                "audio_files": ["s3://test-audio/a.mp3"],
                "metadata": {"title": "Week", "author": "alice"},
            },
        )

        assert handle.priority == JobPriority.LOW

    def test_explicit_priority(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        handle = manager.enqueue(JobType.FETCH_TWEETS, fetch_payload, priority=42)

        assert manager.get_job(JobType.FETCH_TWEETS, handle.id).priority == 42

    @pytest.mark.parametrize("priority", ["high", 2.5, True])
    def test_non_integer_priority_rejected(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
        priority: Any,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            manager.enqueue(JobType.FETCH_TWEETS, fetch_payload, priority=priority)

        assert exc_info.value.details["field"] == "priority"

    def test_unknown_job_type(self, manager: QueueManager) -> None:
        with pytest.raises(NotFoundError):
            manager.enqueue("transcode_video", {})

    @pytest.mark.parametrize(
        "payload",
        [
            {"source_type": "username", "source_value": "alice"},
            {"podcast_id": "not-a-uuid", "source_type": "username", "source_value": "alice"},
            {"podcast_id": str(uuid4()), "source_type": "rss", "source_value": "alice"},
            {"podcast_id": str(uuid4()), "source_type": "username", "source_value": "   "},
            {"podcast_id": str(uuid4()), "source_type": "url", "source_value": "not a url"},
            {
                "podcast_id": str(uuid4()),
                "source_type": "url",
                "source_value": "https://example.com/alice/status/12",
            },
            {
                "podcast_id": str(uuid4()),
                "source_type": "username",
                "source_value": "alice",
                "unexpected": True,
            },
        ],
    )
    def test_invalid_fetch_payload_rejected(
        self,
        manager: QueueManager,
        payload: dict[str, Any],
    ) -> None:
        """Invalid payloads are rejected before anything is stored."""
        with pytest.raises(ValidationError) as exc_info:
            manager.enqueue(JobType.FETCH_TWEETS, payload)

        assert exc_info.value.details["errors"]
        assert manager.get_job_counts(JobType.FETCH_TWEETS).waiting == 0

    def test_empty_tweet_ids_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.enqueue(
                JobType.ANALYZE_EMOTIONS,
                {"podcast_id": str(uuid4()), "tweet_ids": []},
            )

    def test_empty_segments_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.enqueue(
                JobType.GENERATE_AUDIO,
                {"podcast_id": str(uuid4()), "segments": []},
            )

    def test_voice_settings_out_of_range_rejected(
        self,
        manager: QueueManager,
        voice: dict[str, Any],
    ) -> None:
        with pytest.raises(ValidationError):
            manager.enqueue(
                JobType.GENERATE_AUDIO,
                {
                    "podcast_id": str(uuid4()),
                    "segments": [
                        {
                            "type": "intro",
                            "text": "Welcome",
                            "voice_params": {**voice, "stability": 1.5},
                        }
                    ],
                },
            )

    def test_inverted_date_range_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.enqueue(
                JobType.FETCH_TWEETS,
                {
                    "podcast_id": str(uuid4()),
                    "source_type": "hashtag",
                    "source_value": "python",
                    "filters": {
                        "date_range": {
                            "start": "2026-10-10T00:00:00Z",
                            "end": "2026-10-01T00:00:00Z",
                        }
                    },
                },
            )

    def test_empty_audio_files_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.enqueue(
                JobType.ASSEMBLE_PODCAST,
                {
                    "podcast_id": str(uuid4()),
                    "audio_files": [],
                    "metadata": {"title": "Week", "author": "alice"},
                },
            )

    @pytest.mark.parametrize("job_type", list(JobType))
    def test_new_job_starts_waiting(
        self,
        manager: QueueManager,
        voice: dict[str, Any],
        job_type: JobType,
    ) -> None:
        """Every job type starts waiting with no attempts and no progress."""
        handle = manager.enqueue(job_type, valid_payload(job_type, voice))

        snapshot = manager.get_job(job_type, handle.id)
        assert snapshot.state == JobState.WAITING
        assert snapshot.attempts_made == 0
        assert snapshot.progress == 0

    def test_thread_url_accepted(self, manager: QueueManager) -> None:
        handle = manager.enqueue(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(uuid4()),
                "source_type": "url",
                "source_value": "https://x.com/alice/status/1234",
            },
        )

        assert manager.get_job(JobType.FETCH_TWEETS, handle.id).state == JobState.WAITING

    def test_naive_date_range_bound_is_utc(self, manager: QueueManager) -> None:
        """A bound without a timezone is read as UTC and compared with the other."""
        handle = manager.enqueue(
            JobType.FETCH_TWEETS,
            {
                "podcast_id": str(uuid4()),
                "source_type": "hashtag",
                "source_value": "python",
                "filters": {
                    "date_range": {
                        "start": "2024-01-01T00:00:00Z",
                        "end": "2024-01-02T00:00:00",
                    }
                },
            },
        )

        assert handle.payload["filters"]["date_range"]["end"] == "2024-01-02T00:00:00Z"

    def test_mixed_timezone_inverted_range_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError) as exc_info:
            manager.enqueue(
                JobType.FETCH_TWEETS,
                {
                    "podcast_id": str(uuid4()),
                    "source_type": "hashtag",
                    "source_value": "python",
                    "filters": {
                        "date_range": {
                            "start": "2024-01-03T00:00:00",
                            "end": "2024-01-02T00:00:00+00:00",
                        }
                    },
                },
            )

        assert exc_info.value.details["errors"]
        assert manager.get_job_counts(JobType.FETCH_TWEETS).waiting == 0

    def test_priority_outside_storage_range_rejected(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            manager.enqueue(JobType.FETCH_TWEETS, fetch_payload, priority=MAX_PRIORITY + 1)

        assert exc_info.value.details["field"] == "priority"

    def test_largest_priority_accepted(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        handle = manager.enqueue(JobType.FETCH_TWEETS, fetch_payload, priority=MAX_PRIORITY)

        assert manager.get_job(JobType.FETCH_TWEETS, handle.id).priority == MAX_PRIORITY


class TestIntrospection:
    """Tests for lookup, counts, pause and clean."""

    def test_get_unknown_job(self, manager: QueueManager) -> None:
        with pytest.raises(NotFoundError):
            manager.get_job(JobType.FETCH_TWEETS, str(uuid4()))

    def test_get_job_under_wrong_type(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        handle = manager.enqueue(JobType.FETCH_TWEETS, fetch_payload)

        with pytest.raises(NotFoundError):
            manager.get_job(JobType.ANALYZE_EMOTIONS, handle.id)

    def test_all_job_counts_cover_every_type(
        self,
        manager: QueueManager,
        fetch_payload: dict[str, Any],
    ) -> None:
        manager.enqueue(JobType.FETCH_TWEETS, fetch_payload)

        counts = manager.get_all_job_counts()

        assert set(counts) == set(JobType)
        assert counts[JobType.FETCH_TWEETS].waiting == 1
        assert counts[JobType.GENERATE_AUDIO].waiting == 0

    def test_pause_and_resume(self, manager: QueueManager) -> None:
        manager.pause("generate_audio")
        assert manager.is_paused(JobType.GENERATE_AUDIO)
        assert not manager.is_paused(JobType.FETCH_TWEETS)

        manager.resume(JobType.GENERATE_AUDIO)
        assert not manager.is_paused(JobType.GENERATE_AUDIO)

    def test_negative_grace_rejected(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.clean(JobType.FETCH_TWEETS, grace_ms=-1)

    def test_clean_delegates_to_store(self) -> None:
        store = MagicMock()
        store.clean.return_value = ["a", "b"]
        manager = QueueManager(store, PIPELINE_REGISTRY)

        removed = manager.clean("fetch_tweets", grace_ms=1000, limit=10)

        assert removed == ["a", "b"]
        store.clean.assert_called_once_with(JobType.FETCH_TWEETS, 1000, 10)


class TestCloseAll:
    """Tests for orderly shutdown."""

    def test_close_refuses_new_jobs(
        self,
        fetch_payload: dict[str, Any],
    ) -> None:
        """After close_all, enqueue fails with a conflict."""
        manager = QueueManager(InMemoryJobStore(), PIPELINE_REGISTRY)

        assert manager.close_all(timeout=1.0) is True
        assert manager.is_closed

        with pytest.raises(ConflictError):
            manager.enqueue(JobType.FETCH_TWEETS, fetch_payload)

    def test_close_drains_workers_then_closes_store(self) -> None:
        store = MagicMock()
        workers = MagicMock()
        workers.close.return_value = False
        manager = QueueManager(store, PIPELINE_REGISTRY)
        manager.bind_workers(workers)

        drained = manager.close_all(timeout=2.0)

        assert drained is False
        workers.close.assert_called_once_with(2.0)
        store.close.assert_called_once()

    def test_close_is_idempotent(self) -> None:
        store = MagicMock()
        manager = QueueManager(store, PIPELINE_REGISTRY)

        manager.close_all()
        manager.close_all()

        store.close.assert_called_once()
