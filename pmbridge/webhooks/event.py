"""
Normalized webhook events.

Every adapter that accepts webhooks turns a platform delivery into one
``WebhookEvent``. ``kind`` is a plain string: the known kinds are listed in
``EventKind``, but the GitHub Projects parser passes actions it does not map
through verbatim (e.g. ``"reordered"``), so consumers must tolerate unknown
kinds.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..resources import Identifier, User

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    ISSUE_CREATED = "issue_created"
    ISSUE_UPDATED = "issue_updated"
    ISSUE_DELETED = "issue_deleted"
    COMMENT_ADDED = "comment_added"
    COMMENT_UPDATED = "comment_updated"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"


@dataclass(frozen=True, kw_only=True, slots=True)
class WebhookEvent:
    """A platform webhook delivery in normalized form."""

    kind: str
    resource_kind: str
    resource_id: Identifier | None = None
    resource_key: str | None = None
    project_id: Identifier | None = None
    timestamp: datetime | None = None
    actor: User | None = None
    changes: Mapping[str, Any] | None = None
    source: str | None = None
    data: Mapping[str, Any] | None = field(default=None, repr=False)
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def known(self) -> bool:
        """Whether ``kind`` is one of the ``EventKind`` values."""
        return self.kind in EventKind._value2member_map_

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "resource_key": self.resource_key,
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "actor": self.actor.to_dict() if self.actor else None,
            "changes": dict(self.changes) if self.changes is not None else None,
            "source": self.source,
        }


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, tolerating the trailing ``Z`` form."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable webhook timestamp: {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class WebhookParserMixin:
    """
    Template for adapter webhook parsing.

    ``parse_webhook`` handles decoding; adapters implement
    ``_parse_webhook_payload`` and return None for deliveries they do not map.
    """

    backend: str

    def parse_webhook(
        self, raw_body: bytes | str, headers: Mapping[str, str] | None = None
    ) -> WebhookEvent | None:
        try:
            payload = json.loads(raw_body)
        except (ValueError, TypeError):
            logger.warning(f"[{self.backend}] Discarding webhook with undecodable body")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"[{self.backend}] Discarding webhook with non-object payload")
            return None
        return self._parse_webhook_payload(payload, _lower_keys(headers))

    def _parse_webhook_payload(
        self, payload: dict[str, Any], headers: Mapping[str, str]
    ) -> WebhookEvent | None:
        raise NotImplementedError


def _lower_keys(headers: Mapping[str, str] | None) -> dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}
