"""Async REST client with retry logic and error handling.

Shared by the Gmail and Todoist adapters:
- Automatic retry with exponential backoff and jitter for 5xx and timeouts
- Retry-After aware handling of rate limits (429 responses)
- Proactive token bucket rate limiting
- Provider-specific exception class for non-retryable errors

Usage:
    from todo_agent.core.errors import MailProviderError
    from todo_agent.providers.http import RestClient

    client = RestClient(
        "https://gmail.googleapis.com/gmail/v1/users/me",
        token_provider=lambda: os.environ["GMAIL_ACCESS_TOKEN"],
        service="gmail",
        error_cls=MailProviderError,
    )
    labels = await client.get("/labels")
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from typing import Any

import httpx

from todo_agent.core.errors import RateLimitExceeded, UpstreamError
from todo_agent.core.logging import get_logger
from todo_agent.core.rate_limiter import TokenBucket

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = [1.0, 2.0, 4.0]  # Exponential backoff delays in seconds


class RestClient:
    """JSON REST client for one provider.

    Attributes:
        base_url: Provider API base URL
        service: Short provider name used in logs and error messages
        max_retries: Maximum number of retry attempts
        retry_delays: Delay (seconds) before each retry
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        *,
        service: str,
        error_cls: type[UpstreamError] = UpstreamError,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: list[float] | None = None,
        timeout: float = 30.0,
        rate_bucket: TokenBucket | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL
            token_provider: Returns the current bearer token
            service: Provider name for logs ('gmail', 'todoist')
            error_cls: UpstreamError subclass raised for this provider
            max_retries: Maximum number of retry attempts for transient errors
            retry_delays: Delay times in seconds for each retry
            timeout: Request timeout in seconds
            rate_bucket: Optional proactive rate limiter
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.service = service
        self.max_retries = max_retries
        self.retry_delays = retry_delays or DEFAULT_RETRY_DELAYS
        self._token_provider = token_provider
        self._error_cls = error_cls
        self._rate_bucket = rate_bucket
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _get_headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise self._error_cls(
                f"No access token available for {self.service}. "
                "Set the corresponding *_TOKEN environment variable.",
                status_code=401,
                error_code="missing_token",
            )
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _make_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return self.base_url + endpoint

    def _raise_for_response(self, response: httpx.Response, method: str, endpoint: str) -> None:
        """Raise the provider error for a non-retryable (or exhausted) response."""
        error_code = "unknown"
        try:
            error_data = response.json()
            error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
            if isinstance(error_info, dict):
                error_code = str(error_info.get("status") or error_info.get("code") or "unknown")
                error_message = error_info.get("message") or response.text
            else:
                error_message = str(error_info) or response.text
        except ValueError:
            error_message = response.text or f"HTTP {response.status_code}"

        logger.error(
            "provider_api_error",
            service=self.service,
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message[:200],
        )

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            raise RateLimitExceeded(
                f"{self.service} rate limit exceeded (429). Retry after: {retry_after} seconds.",
                retry_after=retry_after,
            )
        if response.status_code == 401:
            raise self._error_cls(
                f"{self.service} authentication failed (401): {error_message}. "
                "The access token may have expired.",
                status_code=401,
                error_code=error_code,
            )
        raise self._error_cls(
            f"{self.service} API error ({response.status_code}): {error_message}",
            status_code=response.status_code,
            error_code=error_code,
        )

    def _should_retry(self, response: httpx.Response, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return response.status_code == 429 or 500 <= response.status_code < 600

    def _get_retry_delay(self, response: httpx.Response | None, attempt: int) -> float:
        """Backoff delay with ±20% jitter; honors Retry-After on 429."""
        base_delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
        if response is not None and response.status_code == 429:
            retry_after = _parse_retry_after(response)
            if retry_after is not None:
                base_delay = retry_after

        jitter = base_delay * 0.2 * (2 * random.random() - 1)
        return base_delay + jitter

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request with retry logic.

        Returns:
            Parsed JSON response ({} for empty bodies)

        Raises:
            UpstreamError subclass: For API errors and exhausted retries
            RateLimitExceeded: When 429s persist after all retries
        """
        url = self._make_url(endpoint)

        for attempt in range(self.max_retries + 1):
            if self._rate_bucket is not None:
                await self._rate_bucket.consume()

            logger.debug(
                "provider_api_request",
                service=self.service,
                method=method,
                endpoint=endpoint,
                attempt=attempt + 1,
            )

            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    params=params,
                    json=json,
                )
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt < self.max_retries:
                    delay = self._get_retry_delay(None, attempt)
                    logger.warning(
                        "provider_api_transport_error_retrying",
                        service=self.service,
                        endpoint=endpoint,
                        error_type=type(e).__name__,
                        attempt=attempt + 1,
                        delay=round(delay, 2),
                    )
                    await asyncio.sleep(delay)
                    continue
                raise self._error_cls(
                    f"Request to {self.service} {endpoint} failed after "
                    f"{self.max_retries} retries: {type(e).__name__}: {e}",
                    status_code=None,
                ) from e

            if response.status_code < 400:
                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()

            if self._should_retry(response, attempt):
                delay = self._get_retry_delay(response, attempt)
                logger.warning(
                    "provider_api_retrying",
                    service=self.service,
                    method=method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)
                continue

            self._raise_for_response(response, method, endpoint)

        raise self._error_cls(
            f"Request to {self.service} {endpoint} failed after {self.max_retries} retries"
        )

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self.request("POST", endpoint, params=params, json=json)


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
