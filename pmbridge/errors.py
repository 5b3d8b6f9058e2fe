"""
Error taxonomy for pmbridge.

Every failure that reaches a caller is one of the classes below. Transport
failures are translated exactly once, at the adapter boundary, by
``pmbridge.error_mapper.ErrorMapper``; local misconfiguration is raised
directly without touching the network.

Hierarchy:
    PMBridgeError
    ├── AuthenticationError      401/403, credentials rejected or expired
    ├── NotFoundError            404, resource absent
    ├── RateLimitError           429, carries retry_after when known
    ├── ValidationError          400/422, carries per-field detail
    ├── ApiError                 anything else from the backend
    ├── BackendConnectionError   network-level failure below HTTP
    ├── ConfigurationError       local misconfiguration
    ├── UnsupportedOperationError  optional capability not implemented
    └── MissingContextError      required scoping key absent (also ValueError)
"""

from __future__ import annotations

from typing import Any


class PMBridgeError(Exception):
    """Base exception for all pmbridge errors."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.status_code = status_code
        self.response_body = response_body

    def __str__(self) -> str:
        parts = [f"[{self.backend}] {self.message}" if self.backend else self.message]
        if self.status_code:
            parts.append(f"(status={self.status_code})")
        return " ".join(parts)


class AuthenticationError(PMBridgeError):
    """Raised when the backend rejects the configured credentials (401/403)."""


class NotFoundError(PMBridgeError):
    """Raised when a requested resource does not exist (404)."""


class RateLimitError(PMBridgeError):
    """Raised when the backend throttles requests (429)."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, backend, **kwargs)
        self.retry_after = retry_after


class ValidationError(PMBridgeError):
    """Raised when the backend rejects the submitted input (400/422)."""

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        *,
        field_errors: dict[str, list[str]] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, backend, **kwargs)
        self.field_errors = field_errors or {}


class ApiError(PMBridgeError):
    """Generic, unclassified backend failure."""


class BackendConnectionError(PMBridgeError):
    """Raised for network failures and timeouts below the HTTP layer."""


class ConfigurationError(PMBridgeError):
    """Raised for local misconfiguration (missing mappings, unknown adapters)."""


class UnsupportedOperationError(PMBridgeError):
    """Raised when an adapter does not implement an optional operation."""


class MissingContextError(PMBridgeError, ValueError):
    """Raised when an operation is called without a required context key."""

    def __init__(self, operation: str, missing: list[str], backend: str | None = None):
        keys = ", ".join(repr(key) for key in missing)
        super().__init__(f"{operation} requires context key(s): {keys}", backend)
        self.operation = operation
        self.missing = missing


__all__ = [
    "ApiError",
    "AuthenticationError",
    "BackendConnectionError",
    "ConfigurationError",
    "MissingContextError",
    "NotFoundError",
    "PMBridgeError",
    "RateLimitError",
    "UnsupportedOperationError",
    "ValidationError",
]
