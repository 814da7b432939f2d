"""
Tweetcast services.

Collaborator interfaces used by the stage routines and their production
adapters:
- TwitterTweetSource: posts from the Twitter API v2
- OpenAIEmotionClassifier: emotion labels from an OpenAI model
- ElevenLabsSpeechSynthesizer: segment narration stored in S3
- FFmpegAudioAssembler: concatenation, tagging and loudness normalization
"""

from tweetcast.services.audio_assembly import FFmpegAudioAssembler
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
from tweetcast.services.emotion_analysis import OpenAIEmotionClassifier
from tweetcast.services.speech import ElevenLabsSpeechSynthesizer
from tweetcast.services.tweet_source import TwitterTweetSource, parse_tweet_url

__all__ = [
    "AssembledAudio",
    "AudioArtifact",
    "AudioAssembler",
    "ElevenLabsSpeechSynthesizer",
    "EmotionClassifier",
    "EmotionLabel",
    "FFmpegAudioAssembler",
    "FetchOptions",
    "FetchedPost",
    "OpenAIEmotionClassifier",
    "SocialMediaClient",
    "SpeechSynthesizer",
    "TwitterTweetSource",
    "parse_tweet_url",
]
