"""
ElevenLabs API client for text-to-speech.

Generates narration audio for podcast segments with per-segment voice
settings and tracks character usage and cost.

API Reference: https://elevenlabs.io/docs/api-reference
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import ValidationError
from tweetcast.integrations.base_client import SyncBaseHTTPClient, UsageMetrics

logger = logging.getLogger(__name__)


# Price per 1000 characters
ELEVENLABS_PRICING: dict[str, Decimal] = {
    "free": Decimal("0"),
    "starter": Decimal("0.30"),
    "creator": Decimal("0.22"),
    "pro": Decimal("0.18"),
    "scale": Decimal("0.11"),
}

DEFAULT_PRICING_TIER = "creator"

# ~150 words per minute at ~5 characters per word
MS_PER_CHARACTER = 80


@dataclass
class SpeechResult:
    """
    Result of one speech generation.

    Attributes:
        audio_data: Generated audio bytes
        content_type: Audio MIME type
        character_count: Characters billed
        duration_ms: Estimated duration in milliseconds
        voice_id: Voice used
        model_id: Model used
    """

    audio_data: bytes
    content_type: str = "audio/mpeg"
    character_count: int = 0
    duration_ms: int | None = None
    voice_id: str = ""
    model_id: str = ""

    @property
    def file_size_bytes(self) -> int:
        return len(self.audio_data)


class ElevenLabsClient(SyncBaseHTTPClient):
    """
    ElevenLabs text-to-speech client.

    Example:
        ```python
        client = ElevenLabsClient()
        result = client.generate_speech(
            text="Here is what people said this week.",
            voice_id="21m00Tcm4TlvDq8ikWAM",
            voice_settings={"stability": 0.5, "similarity_boost": 0.75,
                            "style": 0.2, "use_speaker_boost": True},
        )
        ```
    """

    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: str | None = None,
        settings: Settings | None = None,
        pricing_tier: str = DEFAULT_PRICING_TIER,
        max_retries: int = 3,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the ElevenLabs client.

        Args:
            api_key: ElevenLabs API key (uses settings if not provided)
            settings: Application settings instance
            pricing_tier: Pricing tier for cost estimation
            max_retries: Maximum number of attempts
            timeout: Request timeout in seconds
            transport: Optional httpx transport override

        Raises:
            ValidationError: If no API key is configured
        """
        self._settings = settings or get_settings()
        api_key = api_key or self._settings.elevenlabs_api_key
        if not api_key:
            raise ValidationError(
                message="ElevenLabs API key is required",
                field="elevenlabs_api_key",
            )
        self._model_id = self._settings.elevenlabs_model
        self._pricing_tier = pricing_tier

        super().__init__(
            base_url=self.BASE_URL,
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
            transport=transport,
        )
        self._total_usage = UsageMetrics(provider="elevenlabs", unit_type="characters")

    @property
    def service_name(self) -> str:
        return "ElevenLabs"

    def _get_headers(self) -> dict[str, str]:
        return {
            "xi-api-key": self._api_key or "",
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }

    def _calculate_cost(self, character_count: int) -> Decimal:
        price_per_1k = ELEVENLABS_PRICING.get(self._pricing_tier, ELEVENLABS_PRICING["creator"])
        return (Decimal(str(character_count)) / Decimal("1000")) * price_per_1k

    def generate_speech(
        self,
        text: str,
        voice_id: str,
        voice_settings: dict[str, Any] | None = None,
        model_id: str | None = None,
        output_format: str = "mp3_44100_128",
    ) -> SpeechResult:
        """
        Generate speech from text.

        Args:
            text: Text to convert to speech
            voice_id: Voice identifier
            voice_settings: stability, similarity_boost, style, use_speaker_boost
            model_id: Model to use (defaults to settings.elevenlabs_model)
            output_format: Output audio format, e.g. mp3_44100_128

        Returns:
            SpeechResult with audio data and metadata

        Raises:
            ValidationError: If text is empty
            ExternalServiceError: If generation fails
        """
        if not text or not text.strip():
            raise ValidationError(message="Text cannot be empty", field="text")

        model_id = model_id or self._model_id
        payload: dict[str, Any] = {"text": text, "model_id": model_id}
        if voice_settings:
            payload["voice_settings"] = voice_settings

        response = self._post(
            f"text-to-speech/{voice_id}",
            json_data=payload,
            params={"output_format": output_format},
        )

        audio_data = response.content
        character_count = len(text)
        duration_ms = character_count * MS_PER_CHARACTER
        cost = self._calculate_cost(character_count)
        self._total_usage.add_units(character_count)
        self._total_usage.estimated_cost_usd += cost

        logger.info(
            "Generated speech with ElevenLabs",
            extra={
                "voice_id": voice_id,
                "model_id": model_id,
                "character_count": character_count,
                "audio_size_bytes": len(audio_data),
                "estimated_duration_ms": duration_ms,
                "estimated_cost_usd": float(cost),
            },
        )

        return SpeechResult(
            audio_data=audio_data,
            content_type="audio/mpeg" if output_format.startswith("mp3") else "audio/wav",
            character_count=character_count,
            duration_ms=duration_ms,
            voice_id=voice_id,
            model_id=model_id,
        )


def get_elevenlabs_client(settings: Settings | None = None) -> ElevenLabsClient:
    """Factory function to create an ElevenLabs client."""
    return ElevenLabsClient(settings=settings)
