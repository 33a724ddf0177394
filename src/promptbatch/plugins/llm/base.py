# src/promptbatch/plugins/llm/base.py
"""Base class for API providers.

A provider turns one (system, user) prompt pair into a normalized
result dict with one HTTP call per attempt. The base class owns the
permit pool, the retry loop and the HTTP client; variants supply the
request shape and the response parsing.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from promptbatch.contracts.errors import RetriesExhaustedError
from promptbatch.core.config import AgentApiConfig, LLMApiConfig, mask_secret
from promptbatch.core.logging import truncate
from promptbatch.plugins.llm.capacity_errors import is_retryable_exception, is_retryable_status
from promptbatch.plugins.llm.retry import RetryPolicy

logger = structlog.get_logger(__name__)


class BaseProvider(ABC):
    """Permit-pooled, retrying HTTP provider.

    Thread-safe: make_request() may be called from many worker threads.
    At most `concurrent_limit` requests are on the wire at once; a
    permit is held only for the duration of one HTTP exchange and is
    released on every path, so backoff sleeps do not occupy a slot.

    Args:
        config: Validated api config for this variant.
        client: Optional pre-built httpx.Client (tests inject one with
            a MockTransport). The provider closes only clients it created.
        sleep: Sleep function used between attempts.
    """

    api_type: str

    def __init__(
        self,
        config: LLMApiConfig | AgentApiConfig,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._config = config
        self._api_key = config.api_key
        self._concurrent_limit = config.concurrent_limit
        self._permits = threading.BoundedSemaphore(config.concurrent_limit)
        self._retry = RetryPolicy(
            max_attempts=config.max_retries,
            interval=config.retry_interval,
        )
        self._sleep = sleep or time.sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.timeout_seconds)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def concurrent_limit(self) -> int:
        return self._concurrent_limit

    @property
    @abstractmethod
    def url(self) -> str:
        """Full request URL."""
        ...

    @abstractmethod
    def build_body(self, system: str, user: str) -> dict[str, Any]:
        """Build the JSON request body for one prompt pair."""
        ...

    @abstractmethod
    def parse_response(self, data: Any) -> dict[str, Any] | None:
        """Normalize a decoded 2xx response body; None means unusable."""
        ...

    @abstractmethod
    def info(self) -> dict[str, Any]:
        """Describe the provider for logs and UIs. Never includes secrets."""
        ...

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _send(self, body: dict[str, Any]) -> httpx.Response:
        """One HTTP exchange under a permit."""
        with self._permits:
            return self._client.post(self.url, json=body, headers=self._headers())

    def make_request(self, system: str, user: str) -> dict[str, Any] | None:
        """Send one prompt pair, retrying transient failures.

        Returns:
            Normalized result, or None on a non-retryable HTTP status or
            an unparseable response.

        Raises:
            RetriesExhaustedError: Every attempt failed with a retryable
                status or a transport error.
        """
        body = self.build_body(system, user)
        last_error = ""
        attempt = 0
        while True:
            logger.debug(
                "provider_request",
                api_type=self.api_type,
                url=self.url,
                attempt=attempt + 1,
                max_attempts=self._retry.max_attempts,
            )
            try:
                response = self._send(body)
            except httpx.RequestError as e:
                last_error = f"{type(e).__name__}: {e}"
                if not is_retryable_exception(e):
                    logger.error("provider_request_error", api_type=self.api_type, error=last_error)
                    return None
                logger.warning(
                    "provider_transport_error",
                    api_type=self.api_type,
                    attempt=attempt + 1,
                    error=last_error,
                )
            else:
                if response.is_success:
                    return self._decode(response)
                if not is_retryable_status(response.status_code):
                    logger.error(
                        "provider_request_failed",
                        api_type=self.api_type,
                        status_code=response.status_code,
                        body=truncate(response.text),
                    )
                    return None
                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "provider_retryable_status",
                    api_type=self.api_type,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    body=truncate(response.text),
                )

            if not self._retry.should_retry(attempt):
                logger.error(
                    "provider_retries_exhausted",
                    api_type=self.api_type,
                    attempts=attempt + 1,
                    error=last_error,
                )
                raise RetriesExhaustedError(attempt + 1, last_error)
            delay = self._retry.delay_for(attempt)
            logger.info("provider_retry_scheduled", delay_seconds=delay, next_attempt=attempt + 2)
            self._sleep(delay)
            attempt += 1

    def _decode(self, response: httpx.Response) -> dict[str, Any] | None:
        # Proxies may return HTML error pages with HTTP 200
        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                "provider_invalid_json",
                api_type=self.api_type,
                error=str(e),
                content_type=response.headers.get("content-type", "unknown"),
                body=truncate(response.text),
            )
            return None
        return self.parse_response(data)

    def _common_info(self) -> dict[str, Any]:
        return {
            "type": self.api_type,
            "maxRetries": self._retry.max_attempts,
            "concurrentLimit": self._concurrent_limit,
            "apiKey": mask_secret(self._api_key),
        }

    def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> BaseProvider:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
