"""Webhook events, signature helpers and the ingress router."""

from .event import (
    EventKind,
    WebhookEvent,
    WebhookParserMixin,
    parse_timestamp,
)
from .signatures import compute_hmac, verify_hmac_signature

__all__ = [
    "EventKind",
    "WebhookEvent",
    "WebhookParserMixin",
    "compute_hmac",
    "parse_timestamp",
    "verify_hmac_signature",
]
