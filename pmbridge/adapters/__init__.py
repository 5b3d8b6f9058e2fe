"""
Adapters for pmbridge.

Every adapter implements ``Adapter`` from ``pmbridge.adapters.base``; the
reference implementations below cover a REST backend (Trello) and a GraphQL
backend (GitHub Projects V2).
"""

from .base import OPERATION_TABLE, Adapter, Operation
from .capabilities import Capability, detect_capabilities, has_capability
from .github_project import GitHubProjectAdapter
from .trello import TrelloAdapter

ADAPTER_TYPES: dict[str, type[Adapter]] = {
    TrelloAdapter.backend: TrelloAdapter,
    GitHubProjectAdapter.backend: GitHubProjectAdapter,
}

__all__ = [
    "ADAPTER_TYPES",
    "OPERATION_TABLE",
    "Adapter",
    "Capability",
    "GitHubProjectAdapter",
    "Operation",
    "TrelloAdapter",
    "detect_capabilities",
    "has_capability",
]
