"""
Emotion analysis service.

Classifies the emotional tone of a tweet with an OpenAI model using
structured output, so every answer is one of the known labels with a
confidence score and the phrases that drove the decision.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from tweetcast.core.config import Settings, get_settings
from tweetcast.integrations.openai_client import OpenAIClient
from tweetcast.models.enums import EmotionType
from tweetcast.services.collaborators import EmotionClassifier, EmotionLabel

logger = logging.getLogger(__name__)


EMOTION_SYSTEM_PROMPT = """You label the emotional tone of a single tweet so a \
narrator can read it aloud in the right voice.

Pick exactly one emotion:
- neutral: plain statements, announcements, links
- excited: enthusiasm, celebration, exclamation
- angry: frustration, outrage, complaint
- sad: loss, disappointment, grief
- sarcastic: saying the opposite of what is meant
- humorous: jokes, wordplay, playful tone
- urgent: breaking news, warnings, calls to act now
- thoughtful: reflection, nuance, long-form reasoning

Return a confidence between 0 and 1 and up to five short indicators: \
the words, emoji or punctuation that support the label."""


class EmotionResponse(BaseModel):
    """Structured classifier answer."""

    model_config = ConfigDict(extra="forbid")

    emotion: EmotionType = Field(description="The single best-fitting emotion label")
    confidence: float = Field(description="Confidence between 0 and 1")
    indicators: list[str] = Field(
        description="Words, emoji or punctuation that support the label (max 5)"
    )


class OpenAIEmotionClassifier(EmotionClassifier):
    """EmotionClassifier backed by an OpenAI chat model."""

    name = "openai_emotion_classifier"

    def __init__(
        self,
        client: OpenAIClient,
        settings: Settings | None = None,
        model: str | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._model = model or self._settings.openai_model_emotion

    def classify(self, text: str) -> EmotionLabel:
        response, usage = self._client.complete_with_schema(
            messages=[{"role": "user", "content": f"Tweet:\n{text}"}],
            response_model=EmotionResponse,
            model=self._model,
            temperature=0.0,
            max_tokens=200,
            system_message=EMOTION_SYSTEM_PROMPT,
        )
        logger.debug(
            f"Classified tweet as {response.emotion.value}",
            extra={"confidence": response.confidence, "tokens": usage.total_tokens},
        )
        return EmotionLabel(
            label=response.emotion,
            confidence=min(max(response.confidence, 0.0), 1.0),
            indicators=response.indicators[:5],
        )


__all__ = ["EMOTION_SYSTEM_PROMPT", "EmotionResponse", "OpenAIEmotionClassifier"]
