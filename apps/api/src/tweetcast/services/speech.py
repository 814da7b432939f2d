"""
Speech synthesis service: ElevenLabs audio stored in S3.
"""

import logging

from tweetcast.integrations.elevenlabs_client import ElevenLabsClient
from tweetcast.integrations.storage_client import StorageClient
from tweetcast.schemas.payloads import VoiceParameters
from tweetcast.services.collaborators import AudioArtifact, SpeechSynthesizer

logger = logging.getLogger(__name__)


class ElevenLabsSpeechSynthesizer(SpeechSynthesizer):
    """Generates a segment with ElevenLabs and uploads it under ``key``."""

    name = "elevenlabs_speech_synthesizer"

    def __init__(self, client: ElevenLabsClient, storage: StorageClient) -> None:
        self._client = client
        self._storage = storage

    def synthesize(self, text: str, voice: VoiceParameters, key: str) -> AudioArtifact:
        speech = self._client.generate_speech(
            text=text,
            voice_id=voice.voice_id,
            voice_settings=voice.model_dump(exclude={"voice_id"}),
        )
        upload = self._storage.upload_file(
            speech.audio_data,
            key=key,
            content_type=speech.content_type,
            metadata={"voice_id": voice.voice_id, "characters": str(speech.character_count)},
        )
        logger.debug(f"Stored segment audio at {upload.uri}")
        return AudioArtifact(locator=upload.uri, duration_ms=speech.duration_ms)


__all__ = ["ElevenLabsSpeechSynthesizer"]
