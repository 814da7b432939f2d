"""
OpenAI API client wrapper for structured classification.

Thin layer over the OpenAI Python SDK with:
- Retry logic with exponential backoff
- Token usage and cost tracking
- Structured JSON output via response_format json_schema
- Pydantic validation of the returned JSON
"""

import json
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, TypeVar

from openai import APIConnectionError, APIStatusError, OpenAI, RateLimitError
from pydantic import BaseModel

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.exceptions import ExternalServiceError
from tweetcast.core.exceptions import RateLimitError as TweetcastRateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")


# OpenAI pricing per 1K tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4.1-mini": {"input": 0.0004, "output": 0.0016},
    "gpt-4.1-nano": {"input": 0.0001, "output": 0.0004},
}


@dataclass
class TokenUsage:
    """
    Token usage and cost for OpenAI calls.

    Attributes:
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        total_tokens: input + output
        model: Model used
        estimated_cost_usd: Estimated cost in USD
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    model: str = ""
    estimated_cost_usd: Decimal = field(default_factory=lambda: Decimal("0"))

    def calculate_cost(self, model: str) -> Decimal:
        self.model = model
        pricing = MODEL_PRICING.get(model, {"input": 0.0025, "output": 0.01})
        input_cost = Decimal(str(self.input_tokens / 1000)) * Decimal(str(pricing["input"]))
        output_cost = Decimal(str(self.output_tokens / 1000)) * Decimal(str(pricing["output"]))
        self.estimated_cost_usd = input_cost + output_cost
        return self.estimated_cost_usd

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "model": self.model,
            "estimated_cost_usd": float(self.estimated_cost_usd),
        }


@dataclass
class JsonCompletionResult:
    """
    Result of a structured JSON completion.

    Attributes:
        content: Raw JSON text returned by the model
        parsed_content: The parsed JSON
        usage: Token usage and cost
        model: Model used
        finish_reason: Why the model stopped generating
    """

    content: str
    parsed_content: dict[str, Any]
    usage: TokenUsage
    model: str
    finish_reason: str


class OpenAIClient:
    """
    OpenAI client wrapper with retry logic and cost tracking.

    Example:
        ```python
        client = OpenAIClient()
        label, usage = client.complete_with_schema(
            messages=[{"role": "user", "content": tweet_text}],
            response_model=EmotionResponse,
            system_message=EMOTION_SYSTEM_PROMPT,
        )
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        settings: Settings | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key (uses settings if not provided)
            settings: Application settings instance
            max_retries: Maximum number of attempts
            base_delay: Initial delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
            client: Preconfigured SDK client (tests pass a mock)
        """
        self._settings = settings or get_settings()
        self._api_key = api_key or self._settings.openai_api_key
        self._client = client or OpenAI(api_key=self._api_key)
        self._max_retries = max(max_retries, 1)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._total_usage = TokenUsage()

    @property
    def total_usage(self) -> TokenUsage:
        return self._total_usage

    def _calculate_backoff(self, attempt: int) -> float:
        delay = min(self._base_delay * (2**attempt), self._max_delay)
        jitter = delay * (0.1 + 0.2 * random.random())
        return delay + jitter

    def _update_total_usage(self, usage: TokenUsage) -> None:
        self._total_usage.input_tokens += usage.input_tokens
        self._total_usage.output_tokens += usage.output_tokens
        self._total_usage.total_tokens += usage.total_tokens
        self._total_usage.estimated_cost_usd += usage.estimated_cost_usd

    def _with_retries(self, call: Callable[[], R]) -> R:
        """
        Run an SDK call, retrying rate limits, connection errors and 5xx.

        Raises:
            ExternalServiceError: On 4xx or when retries are exhausted
            TweetcastRateLimitError: If the rate limit persists
        """
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            is_last = attempt == self._max_retries - 1
            try:
                return call()
            except RateLimitError as e:
                last_error = e
                delay = self._calculate_backoff(attempt)
                if is_last:
                    raise TweetcastRateLimitError(
                        message="OpenAI rate limit exceeded after retries",
                        retry_after=int(delay),
                    ) from e
                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                time.sleep(delay)
            except APIConnectionError as e:
                last_error = e
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "OpenAI connection error, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                if not is_last:
                    time.sleep(delay)
            except APIStatusError as e:
                if 400 <= e.status_code < 500:
                    logger.error(
                        "OpenAI API client error",
                        extra={"status_code": e.status_code, "error": str(e)},
                    )
                    raise ExternalServiceError(
                        service="OpenAI",
                        message=f"OpenAI API error: {e.message}",
                        original_error=str(e),
                    ) from e
                last_error = e
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "OpenAI API error, retrying",
                    extra={
                        "attempt": attempt + 1,
                        "status_code": e.status_code,
                        "delay_seconds": round(delay, 2),
                    },
                )
                if not is_last:
                    time.sleep(delay)

        error_msg = str(last_error) if last_error else "Unknown error"
        logger.error(
            "OpenAI request failed after all retries",
            extra={"max_retries": self._max_retries, "error": error_msg},
        )
        raise ExternalServiceError(
            service="OpenAI",
            message="OpenAI API call failed after retries",
            original_error=error_msg,
        )

    def complete_json(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        json_schema: dict[str, Any] | None = None,
        schema_name: str = "response",
        temperature: float = 0.2,
        max_tokens: int | None = None,
        system_message: str | None = None,
        strict: bool = True,
    ) -> JsonCompletionResult:
        """
        Generate a structured JSON completion.

        Args:
            messages: Message dicts with 'role' and 'content'
            model: Model to use (defaults to settings.openai_model_emotion)
            json_schema: JSON Schema the response must follow
            schema_name: Name for the schema in response_format
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            system_message: Optional system message to prepend
            strict: Whether to enforce strict schema adherence

        Returns:
            JsonCompletionResult with the parsed JSON

        Raises:
            ExternalServiceError: If generation or parsing fails
        """
        model = model or self._settings.openai_model_emotion

        if system_message:
            messages = [{"role": "system", "content": system_message}] + messages

        response_format: dict[str, Any] = {"type": "json_object"}
        if json_schema:
            response_format = {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "strict": strict, "schema": json_schema},
            }

        start_time = time.time()
        response = self._with_retries(
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=response_format,  # type: ignore[arg-type]
            )
        )
        elapsed_time = time.time() - start_time

        choice = response.choices[0]
        content = choice.message.content or "{}"
        finish_reason = choice.finish_reason or "unknown"

        try:
            parsed_content = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse JSON from OpenAI response",
                extra={"content": content[:500], "error": str(e)},
            )
            raise ExternalServiceError(
                service="OpenAI",
                message="Failed to parse JSON response from OpenAI",
                original_error=str(e),
            ) from e

        usage = TokenUsage()
        if response.usage:
            usage.input_tokens = response.usage.prompt_tokens
            usage.output_tokens = response.usage.completion_tokens
            usage.total_tokens = response.usage.total_tokens
            usage.calculate_cost(model)
        self._update_total_usage(usage)

        logger.debug(
            "OpenAI JSON completion success",
            extra={
                "model": model,
                "elapsed_seconds": round(elapsed_time, 2),
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "finish_reason": finish_reason,
            },
        )

        return JsonCompletionResult(
            content=content,
            parsed_content=parsed_content,
            usage=usage,
            model=model,
            finish_reason=finish_reason,
        )

    def complete_with_schema(
        self,
        messages: list[dict[str, str]],
        response_model: type[T],
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        system_message: str | None = None,
    ) -> tuple[T, TokenUsage]:
        """
        Generate a completion validated against a Pydantic model.

        Returns:
            Tuple of (validated_response, token_usage)

        Raises:
            ExternalServiceError: If generation fails or the response does not
                match the model
        """
        result = self.complete_json(
            messages=messages,
            model=model,
            json_schema=response_model.model_json_schema(),
            schema_name=response_model.__name__,
            temperature=temperature,
            max_tokens=max_tokens,
            system_message=system_message,
        )

        try:
            return response_model.model_validate(result.parsed_content), result.usage
        except Exception as e:
            logger.error(
                "Failed to validate OpenAI response against schema",
                extra={
                    "schema": response_model.__name__,
                    "content": result.content[:500],
                    "error": str(e),
                },
            )
            raise ExternalServiceError(
                service="OpenAI",
                message=f"Response validation failed for {response_model.__name__}",
                original_error=str(e),
            ) from e


def get_openai_client(settings: Settings | None = None) -> OpenAIClient:
    """Factory function to create an OpenAI client."""
    return OpenAIClient(settings=settings)
