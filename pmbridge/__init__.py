"""
pmbridge - one resource model across project-management platforms.

pmbridge normalizes issue trackers, kanban boards and GraphQL project boards
behind a common set of resources and operations:

- **Resources**: Project, Issue, Comment and User value objects
- **Adapters**: one per platform, with optional capabilities detected at runtime
- **Status normalization**: per-project mapping onto a fixed status vocabulary
- **Errors**: a single taxonomy translated at the adapter boundary
- **Pagination**: link-header/offset and GraphQL cursor page walking
- **Webhooks**: signed deliveries parsed into a standard event

Quick Start:
    >>> from pmbridge import AdapterRegistry, Configuration
    >>>
    >>> config = Configuration()
    >>> config.add_adapter("trello", api_key="...", api_token="...")
    >>> registry = AdapterRegistry(config)
    >>>
    >>> trello = registry.get("trello")
    >>> board = await trello.projects.find("5f1e...")
    >>> cards = await board.issues.all()
"""

__version__ = "0.1.0"

from pmbridge.adapters import (
    Adapter,
    Capability,
    GitHubProjectAdapter,
    Operation,
    TrelloAdapter,
)
from pmbridge.config import AdapterConfig, Configuration, GitHubProjectConfig, TrelloConfig
from pmbridge.error_mapper import ErrorMapper
from pmbridge.errors import (
    ApiError,
    AuthenticationError,
    BackendConnectionError,
    ConfigurationError,
    MissingContextError,
    NotFoundError,
    PMBridgeError,
    RateLimitError,
    UnsupportedOperationError,
    ValidationError,
)
from pmbridge.factory import AssociationProxy, ResourceFactory
from pmbridge.registry import AdapterRegistry
from pmbridge.resources import Comment, Issue, Project, ResourceKind, User
from pmbridge.status import NormalizedStatus, StatusMapper
from pmbridge.webhooks import EventKind, WebhookEvent

__all__ = [
    "__version__",
    # Adapters
    "Adapter",
    "AdapterRegistry",
    "Capability",
    "GitHubProjectAdapter",
    "Operation",
    "TrelloAdapter",
    # Configuration
    "AdapterConfig",
    "Configuration",
    "GitHubProjectConfig",
    "TrelloConfig",
    # Resources
    "AssociationProxy",
    "Comment",
    "Issue",
    "Project",
    "ResourceFactory",
    "ResourceKind",
    "User",
    # Status
    "NormalizedStatus",
    "StatusMapper",
    # Webhooks
    "EventKind",
    "WebhookEvent",
    # Errors
    "ApiError",
    "AuthenticationError",
    "BackendConnectionError",
    "ConfigurationError",
    "ErrorMapper",
    "MissingContextError",
    "NotFoundError",
    "PMBridgeError",
    "RateLimitError",
    "UnsupportedOperationError",
    "ValidationError",
]
