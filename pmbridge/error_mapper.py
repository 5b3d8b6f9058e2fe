"""
Status-code to error-kind translation.

Each adapter class carries one ``ErrorMapper``. Mappers are immutable:
``extend`` and ``rescue_status`` return a new mapper, so a subclass can add
entries without disturbing its parent's table.

    class JiraAdapter(Adapter):
        errors = Adapter.errors.rescue_status(409, error=ValidationError)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from .errors import (
    ApiError,
    AuthenticationError,
    BackendConnectionError,
    NotFoundError,
    PMBridgeError,
    RateLimitError,
    ValidationError,
)
from .transport import GraphQLError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MAP: Mapping[int, type[PMBridgeError]] = MappingProxyType(
    {
        400: ValidationError,
        401: AuthenticationError,
        403: AuthenticationError,
        404: NotFoundError,
        422: ValidationError,
        429: RateLimitError,
    }
)

_UNAUTHORIZED = re.compile(r"unauth|forbidden|bad credentials", re.IGNORECASE)
_NOT_FOUND = re.compile(r"not\s+found|could not resolve|unknown id", re.IGNORECASE)


class ErrorMapper:
    """Immutable status-code table plus the translation rules around it."""

    __slots__ = ("_table",)

    def __init__(self, table: Mapping[int, type[PMBridgeError]] | None = None):
        self._table = MappingProxyType(dict(DEFAULT_ERROR_MAP if table is None else table))

    @classmethod
    def default(cls) -> ErrorMapper:
        return cls(DEFAULT_ERROR_MAP)

    @property
    def table(self) -> Mapping[int, type[PMBridgeError]]:
        return self._table

    def extend(self, entries: Mapping[int, type[PMBridgeError]]) -> ErrorMapper:
        """Return a new mapper with ``entries`` layered over this table."""
        return ErrorMapper({**self._table, **entries})

    def rescue_status(self, *codes: int | range, error: type[PMBridgeError]) -> ErrorMapper:
        """Return a new mapper routing every code (or range of codes) to ``error``."""
        entries: dict[int, type[PMBridgeError]] = {}
        for code in codes:
            for status in code if isinstance(code, range) else (code,):
                entries[status] = error
        return self.extend(entries)

    def error_for(self, status_code: int | None) -> type[PMBridgeError]:
        if status_code is None:
            return BackendConnectionError
        return self._table.get(status_code, ApiError)

    def translate(self, exc: TransportError, *, backend: str | None = None) -> PMBridgeError:
        """
        Convert a transport failure into the mapped error kind.

        Never raises itself: unparseable bodies degrade to a string message.
        """
        if isinstance(exc, GraphQLError):
            return self._translate_graphql(exc, backend)

        body = exc.response_body or ""
        payload = _load_json(body)
        message = extract_message(payload, body) or exc.message
        error_class = self.error_for(exc.status_code)

        kwargs: dict[str, Any] = {
            "status_code": exc.status_code,
            "response_body": body or None,
        }
        if issubclass(error_class, ValidationError):
            kwargs["field_errors"] = extract_field_errors(payload)
        elif issubclass(error_class, RateLimitError):
            kwargs["retry_after"] = exc.retry_after
        elif error_class is ApiError and exc.status_code is not None:
            message = f"HTTP {exc.status_code}: {message}"

        logger.debug(
            f"[{backend}] Translated transport failure status={exc.status_code} "
            f"to {error_class.__name__}"
        )
        return error_class(message, backend, **kwargs)

    def _translate_graphql(self, exc: GraphQLError, backend: str | None) -> PMBridgeError:
        message = exc.message
        common = {"status_code": exc.status_code, "response_body": exc.response_body or None}
        if _UNAUTHORIZED.search(message):
            return AuthenticationError(message, backend, **common)
        if _NOT_FOUND.search(message):
            return NotFoundError(message, backend, **common)

        field_errors: dict[str, list[str]] = {}
        for error in exc.errors:
            path = error.get("path") or ["base"]
            key = ".".join(str(p) for p in path)
            field_errors.setdefault(key, []).append(str(error.get("message", "")))
        return ValidationError(message, backend, field_errors=field_errors, **common)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ErrorMapper) and dict(self._table) == dict(other._table)

    def __hash__(self) -> int:
        return hash(frozenset(self._table.items()))

    def __repr__(self) -> str:
        codes = ", ".join(f"{k}: {v.__name__}" for k, v in sorted(self._table.items()))
        return f"ErrorMapper({{{codes}}})"


def _load_json(body: str) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, TypeError):
        return None


def extract_message(payload: Any, body: str) -> str:
    """Pick the most useful human message out of an error body."""
    if isinstance(payload, dict):
        for key in ("message", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
        messages = payload.get("errorMessages")
        if isinstance(messages, list) and messages:
            return "; ".join(str(m) for m in messages)
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
    return body.strip()


def extract_field_errors(payload: Any) -> dict[str, list[str]]:
    """
    Normalize per-field validation detail.

    Accepts ``{"errors": {"field": "msg" | ["msg", ...]}}`` and
    ``{"errors": [{"field": "...", "message": "..."}]}``.
    """
    if not isinstance(payload, dict):
        return {}
    errors = payload.get("errors")
    result: dict[str, list[str]] = {}
    if isinstance(errors, dict):
        for field, detail in errors.items():
            if isinstance(detail, list):
                result[str(field)] = [str(d) for d in detail]
            else:
                result[str(field)] = [str(detail)]
    elif isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict) and "field" in item:
                detail = item.get("message") or item.get("code") or ""
                result.setdefault(str(item["field"]), []).append(str(detail))
    return result
