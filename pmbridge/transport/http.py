"""
HTTP transport for pmbridge adapters.

The transport owns the ``httpx.AsyncClient``, authentication injection and
the retry policy. It knows nothing about the error taxonomy: any non-2xx
response, timeout or network failure is raised as a ``TransportError`` and
translated by the adapter's ``ErrorMapper``.

Retry Strategy:
    - Retryable: timeouts, network errors, 429, 5xx
    - Non-retryable: every other 4xx
    - Backoff: exponential with jitter, Retry-After honoured when present
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_BACKOFF = 60.0


class TransportError(Exception):
    """
    A failed transport call.

    ``status_code`` is None when no HTTP response was received (timeout,
    connection refused, DNS failure).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str = "",
        headers: Mapping[str, str] | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.headers = dict(headers or {})
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code in RETRYABLE_STATUSES


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class HttpTransport:
    """
    Async HTTP client with retry and exponential backoff.

    Args:
        base_url: Prefix for relative request paths
        headers: Headers sent with every request (auth included)
        params: Query parameters sent with every request (Trello-style auth)
        timeout: Per-request timeout in seconds
        max_retries: Retries after the first attempt for retryable failures
        retry_delay: Base delay for exponential backoff
        name: Backend name used in log messages
        client: Pre-built client, mainly for tests with ``httpx.MockTransport``
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        name: str = "http",
        log_requests: bool = False,
        log_responses: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url
        self.name = name
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.log_requests = log_requests
        self.log_responses = log_responses
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self._params = dict(params or {})
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """
        Make an HTTP request, retrying retryable failures.

        Raises:
            TransportError: On a non-retryable failure or after max retries
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await self._do_request(
                    method, path, params=params, json=json, headers=headers
                )
            except TransportError as e:
                if not e.retryable:
                    raise

                if attempt >= self.max_retries:
                    logger.warning(
                        f"[{self.name}] Max retries ({self.max_retries}) "
                        f"reached for {method} {path}"
                    )
                    raise

                backoff = self._calculate_backoff(attempt, e)
                logger.info(
                    f"[{self.name}] Retry {attempt + 1}/{self.max_retries} "
                    f"for {method} {path} after {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)

        raise TransportError(f"Request failed: {method} {path}")

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Make a request and decode the JSON body (None for empty/204)."""
        response = await self.request(method, path, params=params, json=json, headers=headers)
        return decode_json(response)

    def _calculate_backoff(self, attempt: int, error: TransportError) -> float:
        if error.retry_after is not None:
            return min(error.retry_after, MAX_BACKOFF)

        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return max(min(base_delay + jitter, MAX_BACKOFF), 0.0)

    async def _do_request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        client = self._get_client()
        query = {**self._params, **(params or {})}

        if self.log_requests:
            logger.debug(f"[{self.name}] {method} {path} params={params} body={json}")

        try:
            response = await client.request(
                method=method,
                url=path,
                params=query or None,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {e}") from e

        if self.log_responses:
            logger.debug(
                f"[{self.name}] Response: status={response.status_code} "
                f"body={response.text[:500] if response.text else 'empty'}"
            )

        self._check_response(response)
        return response

    def _check_response(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        raise TransportError(
            f"{response.request.method} {response.request.url} "
            f"failed with status {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
            headers=response.headers,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )


def decode_json(response: httpx.Response) -> Any:
    """Decode a response body, raising TransportError for non-JSON content."""
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TransportError(
            f"Non-JSON response from {response.request.url}",
            status_code=response.status_code,
            response_body=response.text,
            headers=response.headers,
        ) from e
