"""GraphQL transport: a single POST endpoint with an ``errors`` array on failure."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .http import HttpTransport, TransportError, decode_json

logger = logging.getLogger(__name__)


class GraphQLError(TransportError):
    """A 2xx GraphQL response that carried an ``errors`` array."""

    def __init__(self, errors: list[dict[str, Any]], *, status_code: int = 200, response_body: str = ""):
        message = "; ".join(str(e.get("message", e)) for e in errors) or "GraphQL error"
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.errors = errors

    @property
    def retryable(self) -> bool:
        return False


class GraphQLTransport(HttpTransport):
    """HTTP transport that posts queries to one GraphQL endpoint."""

    def __init__(self, endpoint: str, **kwargs: Any):
        # httpx appends a trailing slash to base URLs, so the last path
        # segment is posted as a relative path instead.
        base, _, path = endpoint.rstrip("/").rpartition("/")
        super().__init__(base + "/", **kwargs)
        self.endpoint = endpoint
        self.path = path

    async def execute(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Run a query or mutation and return its ``data`` object.

        Raises:
            GraphQLError: If the response carries GraphQL errors
            TransportError: For HTTP-level failures
        """
        response = await self.request(
            "POST",
            self.path,
            json={"query": query, "variables": dict(variables or {})},
        )
        payload = decode_json(response)
        if not isinstance(payload, dict):
            payload = {}
        errors = payload.get("errors")
        if errors:
            logger.debug(f"[{self.name}] GraphQL errors: {errors}")
            raise GraphQLError(errors, status_code=response.status_code, response_body=response.text)
        return payload.get("data") or {}
