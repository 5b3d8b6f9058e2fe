"""
Webhook ingress for pmbridge.

Mounts ``POST /webhooks/{backend}/{instance}``. The request body is verified
against the adapter's configured secret (when one is configured), parsed into
a ``WebhookEvent`` and handed to ``on_event`` as a background task so the
platform gets its 200 immediately.

Example:
    app = FastAPI()
    app.include_router(create_webhook_router(registry, on_event=handle_event))
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response

from ..adapters.capabilities import Capability
from ..errors import ConfigurationError
from ..registry import AdapterRegistry
from .event import WebhookEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[WebhookEvent], Awaitable[None] | None]


def create_webhook_router(
    registry: AdapterRegistry,
    on_event: EventHandler | None = None,
    *,
    prefix: str = "/webhooks",
) -> APIRouter:
    """Build the webhook router bound to ``registry``."""
    router = APIRouter(prefix=prefix, tags=["webhooks"])

    @router.head("/{backend}/{instance}")
    async def probe_webhook(backend: str, instance: str) -> Response:
        # Trello probes the callback URL with HEAD before registering a webhook.
        try:
            registry.get(backend, instance)
        except ConfigurationError:
            raise HTTPException(status_code=404, detail="Unknown adapter") from None
        return Response(status_code=200)

    @router.post("/{backend}/{instance}")
    async def receive_webhook(
        backend: str,
        instance: str,
        request: Request,
        background_tasks: BackgroundTasks,
    ) -> dict[str, Any]:
        try:
            adapter = registry.get(backend, instance)
        except ConfigurationError:
            logger.warning(f"[{backend}] Webhook for unknown adapter instance {instance!r}")
            raise HTTPException(status_code=404, detail="Unknown adapter") from None

        if not adapter.supports(Capability.WEBHOOKS):
            raise HTTPException(status_code=404, detail="Adapter does not accept webhooks")

        raw_body = await request.body()

        if adapter.webhook_secret():
            header = adapter.webhook_signature_header
            signature = request.headers.get(header) if header else None
            if not adapter.verify_webhook_signature(raw_body, signature):
                logger.warning(f"[{backend}] Rejected webhook with invalid signature")
                raise HTTPException(status_code=401, detail="Invalid signature")

        event = adapter.parse_webhook(raw_body, dict(request.headers))
        if event is None:
            logger.debug(f"[{backend}] Webhook accepted but not mapped to an event")
            return {"accepted": False, "event": None}

        logger.info(
            f"[{backend}] Webhook event: {event.kind} "
            f"{event.resource_kind}={event.resource_id}"
        )
        if on_event is not None:
            background_tasks.add_task(on_event, event)

        return {"accepted": True, "event": event.kind}

    return router
