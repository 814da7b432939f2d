"""
External service integrations.

- TwitterClient: Twitter API v2 (timelines, lookup, search)
- OpenAIClient: structured JSON completions
- ElevenLabsClient: text-to-speech
- StorageClient: S3/MinIO object storage
- FFmpegClient: ffmpeg/ffprobe subprocess wrapper
"""

from tweetcast.integrations.base_client import SyncBaseHTTPClient, UsageMetrics
from tweetcast.integrations.elevenlabs_client import ElevenLabsClient, get_elevenlabs_client
from tweetcast.integrations.ffmpeg_client import FFmpegClient
from tweetcast.integrations.openai_client import OpenAIClient, get_openai_client
from tweetcast.integrations.storage_client import StorageClient, get_storage_client
from tweetcast.integrations.twitter_client import TwitterClient, get_twitter_client

__all__ = [
    "ElevenLabsClient",
    "FFmpegClient",
    "OpenAIClient",
    "StorageClient",
    "SyncBaseHTTPClient",
    "TwitterClient",
    "UsageMetrics",
    "get_elevenlabs_client",
    "get_openai_client",
    "get_storage_client",
    "get_twitter_client",
]
