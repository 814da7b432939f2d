"""
Base HTTP client with retry logic and usage tracking.

Every HTTP integration (Twitter, ElevenLabs) extends SyncBaseHTTPClient:
- Retries timeouts, connection errors, 429 and 5xx with exponential
  backoff and jitter (Retry-After is honoured for 429)
- Maps 4xx responses to ExternalServiceError without retrying
- Records request counts and latency per client instance

Stage routines run on worker threads, so the clients are synchronous.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from tweetcast.core.exceptions import ExternalServiceError, RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class UsageMetrics:
    """
    Tracks usage metrics for external API calls.

    Attributes:
        provider: Name of the service provider
        units_used: Number of units consumed (characters, posts, ...)
        unit_type: Type of unit
        estimated_cost_usd: Estimated cost in USD
        request_count: Number of API requests made
        latency_ms: Total latency in milliseconds
    """

    provider: str
    units_used: int = 0
    unit_type: str = "units"
    estimated_cost_usd: Decimal = field(default_factory=lambda: Decimal("0"))
    request_count: int = 0
    latency_ms: int = 0

    def add_units(self, units: int, cost_per_unit: Decimal | None = None) -> None:
        self.units_used += units
        if cost_per_unit is not None:
            self.estimated_cost_usd += Decimal(str(units)) * cost_per_unit

    def record_request(self, latency_ms: int) -> None:
        self.request_count += 1
        self.latency_ms += latency_ms

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            "provider": self.provider,
            "units_used": self.units_used,
            "unit_type": self.unit_type,
            "estimated_cost_usd": float(self.estimated_cost_usd),
            "request_count": self.request_count,
            "latency_ms": self.latency_ms,
        }


class SyncBaseHTTPClient(ABC):
    """
    Synchronous HTTP client base with retries.

    Subclasses provide ``service_name`` and ``_get_headers`` and call
    ``_get`` / ``_post``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            base_url: Base URL for API requests
            api_key: API key or bearer token
            max_retries: Maximum number of attempts per request
            base_delay: Initial delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._max_retries = max(max_retries, 1)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._timeout = timeout

        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport,
        )

        self._total_usage = UsageMetrics(provider=self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the name of the service for logging and error messages."""

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Return default headers for API requests."""

    @property
    def total_usage(self) -> UsageMetrics:
        return self._total_usage

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    def __enter__(self) -> "SyncBaseHTTPClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """
        Exponential backoff delay with jitter.

        Args:
            attempt: Current retry attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(self._base_delay * (2**attempt), self._max_delay)
        jitter = delay * (0.1 + 0.2 * random.random())
        return delay + jitter

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return self._calculate_backoff(attempt)

    def _client_error(self, response: httpx.Response) -> ExternalServiceError:
        error_body = response.text[:500]
        logger.error(
            f"{self.service_name} API client error",
            extra={"status_code": response.status_code, "error": error_body},
        )
        return ExternalServiceError(
            service=self.service_name,
            message=f"{self.service_name} API error: {response.status_code}",
            original_error=error_body,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry logic.

        Returns:
            The successful httpx.Response

        Raises:
            ExternalServiceError: If the request fails after retries or on 4xx
            RateLimitError: If the rate limit persists across every retry
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        request_headers = self._get_headers()
        if headers:
            request_headers.update(headers)

        last_error = "Unknown error"

        for attempt in range(self._max_retries):
            is_last = attempt == self._max_retries - 1
            start_time = time.time()
            try:
                response = self._client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    params=params,
                    json=json_data,
                    timeout=timeout or self._timeout,
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    f"{self.service_name} request timeout, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                if not is_last:
                    time.sleep(delay)
                continue
            except httpx.RequestError as e:
                last_error = str(e)
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    f"{self.service_name} connection error, retrying",
                    extra={
                        "attempt": attempt + 1,
                        "delay_seconds": round(delay, 2),
                        "error": str(e),
                    },
                )
                if not is_last:
                    time.sleep(delay)
                continue

            elapsed_ms = int((time.time() - start_time) * 1000)
            self._total_usage.record_request(elapsed_ms)
            logger.debug(
                f"{self.service_name} API request",
                extra={
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                    "elapsed_ms": elapsed_ms,
                    "attempt": attempt + 1,
                },
            )

            if response.status_code == 429:
                delay = self._retry_delay(response, attempt)
                if is_last:
                    raise RateLimitError(
                        message=f"{self.service_name} rate limit exceeded after retries",
                        retry_after=int(delay),
                    )
                logger.warning(
                    f"{self.service_name} rate limit hit, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                time.sleep(delay)
                continue

            if response.status_code >= 500:
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    f"{self.service_name} server error, retrying",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "delay_seconds": round(delay, 2),
                    },
                )
                if not is_last:
                    time.sleep(delay)
                continue

            if response.status_code >= 400:
                raise self._client_error(response)

            return response

        logger.error(
            f"{self.service_name} request failed after all retries",
            extra={"max_retries": self._max_retries, "error": last_error},
        )
        raise ExternalServiceError(
            service=self.service_name,
            message=f"{self.service_name} API call failed after retries",
            original_error=last_error,
        )

    def _get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make a GET request."""
        return self._request("GET", path, params=params, headers=headers)

    def _post(
        self,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Make a POST request."""
        return self._request(
            "POST",
            path,
            json_data=json_data,
            params=params,
            headers=headers,
            timeout=timeout,
        )
