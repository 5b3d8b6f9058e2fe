"""
Adapter capabilities.

Capability detection for the optional operations of the adapter contract.
An adapter has a capability when its class overrides every method the
capability names; the base implementations only raise
``UnsupportedOperationError``.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .base import Adapter


class Capability(Enum):
    """Optional operations an adapter may support."""

    CREATE_PROJECT = "create_project"
    DELETE_PROJECT = "delete_project"
    LISTS = "lists"                  # create_list
    DELETE_ISSUE = "delete_issue"
    LIST_COMMENTS = "list_comments"
    WEBHOOKS = "webhooks"            # verify_webhook_signature, parse_webhook


# Method names for each capability
CAPABILITY_METHODS: dict[Capability, tuple[str, ...]] = {
    Capability.CREATE_PROJECT: ("create_project",),
    Capability.DELETE_PROJECT: ("delete_project",),
    Capability.LISTS: ("create_list",),
    Capability.DELETE_ISSUE: ("delete_issue",),
    Capability.LIST_COMMENTS: ("list_comments",),
    Capability.WEBHOOKS: ("verify_webhook_signature", "parse_webhook"),
}


def detect_capabilities(adapter: Adapter | type[Adapter]) -> frozenset[Capability]:
    """
    Detect which optional capabilities an adapter supports.

    Args:
        adapter: Adapter instance or class

    Returns:
        Set of supported Capability values
    """
    from .base import Adapter

    adapter_class = adapter if isinstance(adapter, type) else type(adapter)
    capabilities = set()

    for capability, methods in CAPABILITY_METHODS.items():
        overridden = all(
            getattr(adapter_class, method, None) is not getattr(Adapter, method)
            for method in methods
        )
        if overridden:
            capabilities.add(capability)

    return frozenset(capabilities)


def has_capability(adapter: Adapter | type[Adapter], capability: Capability) -> bool:
    """Check if an adapter supports a specific capability."""
    return capability in detect_capabilities(adapter)
