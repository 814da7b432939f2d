"""
Tests for the external service clients and the collaborator adapters built
on them. HTTP clients run against httpx.MockTransport; SDK clients get mocks.
"""

import json
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from tweetcast.core.config import Settings
from tweetcast.core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from tweetcast.integrations.elevenlabs_client import MS_PER_CHARACTER, ElevenLabsClient, SpeechResult
from tweetcast.integrations.ffmpeg_client import ChapterMark, build_ffmetadata
from tweetcast.integrations.openai_client import OpenAIClient
from tweetcast.integrations.storage_client import StorageClient, UploadResult, parse_s3_uri
from tweetcast.integrations.twitter_client import TwitterClient, TwitterUser, format_timestamp
from tweetcast.models.enums import EmotionType, SourceType
from tweetcast.schemas.payloads import PodcastMetadata, TweetFilters, VoiceParameters
from tweetcast.services.audio_assembly import chapter_marks
from tweetcast.services.collaborators import FetchOptions
from tweetcast.services.emotion_analysis import OpenAIEmotionClassifier
from tweetcast.services.speech import ElevenLabsSpeechSynthesizer
from tweetcast.services.tweet_source import TwitterTweetSource, parse_tweet_url

SLEEP = "tweetcast.integrations.base_client.time.sleep"


def tweet_json(tweet_id: str, text: str = "hello", **extra: Any) -> dict[str, Any]:
    return {
        "id": tweet_id,
        "text": text,
        "author_id": "42",
        "created_at": "2026-10-01T12:00:00.000Z",
        "public_metrics": {"like_count": 7, "retweet_count": 2},
        "conversation_id": tweet_id,
        **extra,
    }


def twitter(settings: Settings, handler: Any, max_retries: int = 3) -> TwitterClient:
    return TwitterClient(
        settings=settings,
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


class TestTwitterClient:
    """Tests for the Twitter API v2 client."""

    def test_user_lookup_sends_bearer_token(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"id": "42", "username": "alice"}})

        user = twitter(settings, handler).get_user_by_username("@alice")

        assert user == TwitterUser(id="42", username="alice")
        assert seen[0].url.path == "/2/users/by/username/alice"
        assert seen[0].headers["Authorization"] == "Bearer test-bearer-token"

    def test_timeline_params_and_parsing(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "data": [
                        tweet_json("1"),
                        tweet_json("2", referenced_tweets=[{"type": "replied_to", "id": "1"}]),
                    ],
                    "includes": {"users": [{"id": "42", "username": "alice"}]},
                },
            )

        tweets = twitter(settings, handler).get_user_timeline(
            "42",
            max_results=2,
            start_time=datetime(2026, 10, 1, tzinfo=UTC),
            exclude_replies=False,
        )

        params = seen[0].url.params
        assert seen[0].url.path == "/2/users/42/tweets"
        assert params["max_results"] == "5"
        assert params["exclude"] == "retweets"
        assert params["start_time"] == "2026-10-01T00:00:00Z"
        assert [t.id for t in tweets] == ["1", "2"]
        assert tweets[0].author_username == "alice"
        assert tweets[0].like_count == 7
        assert not tweets[0].is_reply
        assert tweets[1].is_reply

    def test_errors_only_body_maps_to_not_found(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "errors": [
                        {
                            "title": "Not Found Error",
                            "resource_type": "user",
                            "value": "ghost",
                            "detail": "Could not find user with username: [ghost].",
                        }
                    ]
                },
            )

        with pytest.raises(NotFoundError) as exc_info:
            twitter(settings, handler).get_user_by_username("ghost")

        assert exc_info.value.details["resource_id"] == "ghost"

    def test_other_api_errors(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"title": "Forbidden", "detail": "nope"}]})

        with pytest.raises(ExternalServiceError):
            twitter(settings, handler).get_tweet("1")

    def test_server_errors_are_retried(self, settings: Settings) -> None:
        responses = iter(
            [
                httpx.Response(503, text="unavailable"),
                httpx.Response(200, json={"data": tweet_json("9")}),
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        with patch(SLEEP) as sleep:
            tweet = twitter(settings, handler).get_tweet("9")

        assert tweet.id == "9"
        assert sleep.call_count == 1

    def test_client_errors_are_not_retried(self, settings: Settings) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401, json={"title": "Unauthorized"})

        with patch(SLEEP) as sleep, pytest.raises(ExternalServiceError):
            twitter(settings, handler).get_tweet("9")

        assert len(calls) == 1
        sleep.assert_not_called()

    def test_persistent_rate_limit(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "3"})

        with patch(SLEEP) as sleep, pytest.raises(RateLimitError):
            twitter(settings, handler, max_retries=2).get_tweet("9")

        sleep.assert_called_once_with(3.0)

    def test_connection_errors_exhaust_retries(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with patch(SLEEP), pytest.raises(ExternalServiceError, match="after retries"):
            twitter(settings, handler, max_retries=2).get_tweet("9")

    def test_thread_is_root_plus_conversation_in_order(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/search/recent"):
                assert request.url.params["query"] == "conversation_id:100"
                return httpx.Response(
                    200,
                    json={
                        "data": [
                            tweet_json("102", created_at="2026-10-01T12:02:00.000Z"),
                            tweet_json("101", created_at="2026-10-01T12:01:00.000Z"),
                        ]
                    },
                )
            return httpx.Response(200, json={"data": tweet_json("100")})

        thread = twitter(settings, handler).get_thread("100")

        assert [t.id for t in thread] == ["100", "101", "102"]

    def test_missing_token(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"twitter_bearer_token": None})

        with pytest.raises(ValueError):
            TwitterClient(settings=settings)

    def test_format_timestamp_assumes_utc(self) -> None:
        assert format_timestamp(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"


class TestElevenLabsClient:
    """Tests for text-to-speech generation."""

    def test_generate_speech(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"ID3audio")

        client = ElevenLabsClient(settings=settings, transport=httpx.MockTransport(handler))
        result = client.generate_speech(
            "Hello there",
            voice_id="voice-1",
            voice_settings={"stability": 0.5},
        )

        assert result.audio_data == b"ID3audio"
        assert result.character_count == 11
        assert result.duration_ms == 11 * MS_PER_CHARACTER
        assert result.content_type == "audio/mpeg"
        assert seen[0].url.path == "/v1/text-to-speech/voice-1"
        assert seen[0].url.params["output_format"] == "mp3_44100_128"
        assert seen[0].headers["xi-api-key"] == "test-elevenlabs-key"
        body = json.loads(seen[0].content)
        assert body["text"] == "Hello there"
        assert body["model_id"] == settings.elevenlabs_model
        assert body["voice_settings"] == {"stability": 0.5}
        assert client.total_usage.units_used == 11

    def test_empty_text_rejected(self, settings: Settings) -> None:
        client = ElevenLabsClient(
            settings=settings,
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )

        with pytest.raises(ValidationError):
            client.generate_speech("   ", voice_id="voice-1")


def completion(content: str) -> SimpleNamespace:
    """Shape of a chat completion as the SDK returns it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=100, completion_tokens=20, total_tokens=120),
    )


class TestOpenAIEmotionClassifier:
    """Tests for classification through the OpenAI wrapper."""

    def test_classify_clamps_and_trims(self, settings: Settings) -> None:
        sdk = MagicMock()
        sdk.chat.completions.create.return_value = completion(
            json.dumps(
                {
                    "emotion": "excited",
                    "confidence": 1.4,
                    "indicators": ["!!!", "shipped", "huge", "thanks", "team", "wow"],
                }
            )
        )
        client = OpenAIClient(settings=settings, client=sdk)

        label = OpenAIEmotionClassifier(client, settings=settings).classify("We shipped it!!!")

        assert label.label == EmotionType.EXCITED
        assert label.confidence == 1.0
        assert label.indicators == ["!!!", "shipped", "huge", "thanks", "team"]

        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == settings.openai_model_emotion
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["messages"][0]["role"] == "system"
        assert client.total_usage.total_tokens == 120

    def test_invalid_json(self, settings: Settings) -> None:
        sdk = MagicMock()
        sdk.chat.completions.create.return_value = completion("not json")
        client = OpenAIClient(settings=settings, client=sdk)

        with pytest.raises(ExternalServiceError):
            OpenAIEmotionClassifier(client, settings=settings).classify("hi")

    def test_unknown_label_fails_validation(self, settings: Settings) -> None:
        sdk = MagicMock()
        sdk.chat.completions.create.return_value = completion(
            json.dumps({"emotion": "bored", "confidence": 0.5, "indicators": []})
        )
        client = OpenAIClient(settings=settings, client=sdk)

        with pytest.raises(ExternalServiceError, match="validation failed"):
            OpenAIEmotionClassifier(client, settings=settings).classify("meh")


class TestStorageClient:
    """Tests for the S3 wrapper."""

    def test_upload_returns_locator(self, settings: Settings) -> None:
        s3 = MagicMock()
        s3.put_object.return_value = {"ETag": '"abc123"'}
        storage = StorageClient(settings=settings, client=s3)

        result = storage.upload_file(b"audio", key="podcasts/p/final.mp3")

        assert result.uri == "s3://test-audio/podcasts/p/final.mp3"
        assert result.etag == "abc123"
        assert result.content_type == "audio/mpeg"
        assert s3.put_object.call_args.kwargs["Bucket"] == "test-audio"

    def test_missing_object(self, settings: Settings) -> None:
        s3 = MagicMock()
        s3.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )
        storage = StorageClient(settings=settings, client=s3)

        with pytest.raises(NotFoundError):
            storage.download_file("test-audio", "nope.mp3")

    def test_upload_failure(self, settings: Settings) -> None:
        s3 = MagicMock()
        s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        storage = StorageClient(settings=settings, client=s3)

        with pytest.raises(ExternalServiceError):
            storage.upload_file(b"audio", key="a.mp3")

    def test_parse_s3_uri(self) -> None:
        assert parse_s3_uri("s3://bucket/a/b.mp3") == ("bucket", "a/b.mp3")

    @pytest.mark.parametrize("uri", ["https://bucket/a.mp3", "s3://bucket", "s3:///key"])
    def test_parse_s3_uri_rejects(self, uri: str) -> None:
        with pytest.raises(ValidationError):
            parse_s3_uri(uri)


class TestElevenLabsSpeechSynthesizer:
    """Tests for synthesize-and-store."""

    def test_synthesize_uploads_under_key(self, voice: dict[str, Any]) -> None:
        client = MagicMock()
        client.generate_speech.return_value = SpeechResult(
            audio_data=b"mp3", character_count=5, duration_ms=400
        )
        storage = MagicMock()
        storage.upload_file.return_value = UploadResult(
            bucket="test-audio",
            key="k.mp3",
            uri="s3://test-audio/k.mp3",
            etag="e",
            content_type="audio/mpeg",
            file_size_bytes=3,
            checksum_md5="m",
        )

        artifact = ElevenLabsSpeechSynthesizer(client, storage).synthesize(
            "Hello", VoiceParameters(**voice), "k.mp3"
        )

        assert artifact.locator == "s3://test-audio/k.mp3"
        assert artifact.duration_ms == 400
        kwargs = client.generate_speech.call_args.kwargs
        assert kwargs["voice_id"] == voice["voice_id"]
        assert "voice_id" not in kwargs["voice_settings"]
        assert storage.upload_file.call_args.kwargs["key"] == "k.mp3"


class TestTwitterTweetSource:
    """Tests for mapping podcast sources onto Twitter calls."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.get_user_by_username.return_value = TwitterUser(id="42", username="alice")
        client.get_user_timeline.return_value = []
        client.search_recent.return_value = []
        client.get_thread.return_value = []
        return client

    def test_timeline_uses_owner_id(self, client: MagicMock) -> None:
        TwitterTweetSource(client).fetch(
            SourceType.TIMELINE, "me", FetchOptions(user_twitter_id="1001", max_results=20)
        )

        args, kwargs = client.get_user_timeline.call_args
        assert args == ("1001",)
        assert kwargs["max_results"] == 20
        assert kwargs["exclude_retweets"] is True

    def test_timeline_needs_owner_id(self, client: MagicMock) -> None:
        with pytest.raises(ValidationError):
            TwitterTweetSource(client).fetch(SourceType.TIMELINE, "me", FetchOptions())

    def test_username_looks_up_account(self, client: MagicMock) -> None:
        TwitterTweetSource(client).fetch(
            SourceType.USERNAME,
            "alice",
            FetchOptions(filters=TweetFilters(include_replies=True)),
        )

        client.get_user_by_username.assert_called_once_with("alice")
        args, kwargs = client.get_user_timeline.call_args
        assert args == ("42",)
        assert kwargs["exclude_replies"] is False

    def test_hashtag_query(self, client: MagicMock) -> None:
        TwitterTweetSource(client).fetch(SourceType.HASHTAG, "#python", FetchOptions())

        assert client.search_recent.call_args.args[0] == "#python -is:retweet -is:reply"

    def test_url_fetches_thread(self, client: MagicMock) -> None:
        TwitterTweetSource(client).fetch(
            SourceType.URL, "https://twitter.com/alice/status/12345", FetchOptions()
        )

        client.get_thread.assert_called_once_with("12345")


class TestParseTweetUrl:
    """Tests for status URL parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://twitter.com/alice/status/12345",
            "https://x.com/alice/status/12345?s=20",
            "http://mobile.twitter.com/alice/statuses/12345",
            "https://x.com/i/web/status/12345",
        ],
    )
    def test_valid(self, url: str) -> None:
        assert parse_tweet_url(url) == "12345"

    @pytest.mark.parametrize(
        "url",
        ["https://example.com/alice/status/1", "https://x.com/alice", "alice"],
    )
    def test_invalid(self, url: str) -> None:
        with pytest.raises(ValidationError):
            parse_tweet_url(url)


class TestChapters:
    """Tests for chapter marks and the ffmetadata file."""

    def test_chapters_end_where_next_begins(self) -> None:
        metadata = PodcastMetadata(
            title="Week",
            author="alice",
            chapters=[
                {"start_time": 30, "title": "Second"},
                {"start_time": 0, "title": "First"},
            ],
        )

        assert chapter_marks(metadata, 90.0) == [
            ChapterMark(title="First", start=0, end=30),
            ChapterMark(title="Second", start=30, end=90.0),
        ]

    def test_last_chapter_without_duration(self) -> None:
        metadata = PodcastMetadata(
            title="Week", author="alice", chapters=[{"start_time": 12, "title": "Only"}]
        )

        assert chapter_marks(metadata, None) == [ChapterMark(title="Only", start=12, end=12)]

    def test_ffmetadata(self) -> None:
        text = build_ffmetadata(
            {"title": "A=B", "comment": ""},
            [ChapterMark(title="Intro", start=0, end=1.5)],
        )

        assert text.splitlines() == [
            ";FFMETADATA1",
            "title=A\\=B",
            "",
            "[CHAPTER]",
            "TIMEBASE=1/1000",
            "START=0",
            "END=1500",
            "title=Intro",
        ]
