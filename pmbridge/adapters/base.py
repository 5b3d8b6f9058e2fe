"""
Base adapter contract.

An adapter binds one backend account to the normalized model. Subclasses
implement the required operations and may override any optional one; the
base versions of optional operations raise ``UnsupportedOperationError``.

Dispatch from the resource factories goes through an explicit operation
table, ``(ResourceKind, Operation) -> method name``. The table is checked
when the adapter is constructed, so a subclass missing a required handler
fails immediately instead of at the first call.

Error handling:
    Transport collaborators raise ``TransportError``. ``_request``,
    ``_request_page`` and ``_graphql`` translate it exactly once through the
    class's ``errors`` mapper and re-raise with the transport failure as
    ``__cause__``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from ..config import DEFAULT_INSTANCE, AdapterConfig
from ..error_mapper import ErrorMapper
from ..errors import (
    ConfigurationError,
    MissingContextError,
    PMBridgeError,
    UnsupportedOperationError,
)
from ..pagination import CursorPaginator, LinkHeaderPaginator
from ..resources import Comment, Issue, Project, Resource, ResourceKind, User
from ..status import StatusMapper
from ..transport import GraphQLTransport, HttpTransport, TransportError, decode_json
from .capabilities import Capability, detect_capabilities

if TYPE_CHECKING:
    from ..factory import ResourceFactory
    from ..webhooks.event import WebhookEvent

logger = logging.getLogger(__name__)

Context = Mapping[str, Any]


class Operation(str, Enum):
    LIST = "list"
    FIND = "find"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


OPERATION_TABLE: Mapping[tuple[ResourceKind, Operation], str] = {
    (ResourceKind.PROJECT, Operation.LIST): "list_projects",
    (ResourceKind.PROJECT, Operation.FIND): "find_project",
    (ResourceKind.PROJECT, Operation.CREATE): "create_project",
    (ResourceKind.PROJECT, Operation.DELETE): "delete_project",
    (ResourceKind.ISSUE, Operation.LIST): "list_issues",
    (ResourceKind.ISSUE, Operation.FIND): "find_issue",
    (ResourceKind.ISSUE, Operation.CREATE): "create_issue",
    (ResourceKind.ISSUE, Operation.UPDATE): "update_issue",
    (ResourceKind.ISSUE, Operation.DELETE): "delete_issue",
    (ResourceKind.COMMENT, Operation.LIST): "list_comments",
    (ResourceKind.COMMENT, Operation.CREATE): "_create_comment",
}

REQUIRED_OPERATIONS: frozenset[tuple[ResourceKind, Operation]] = frozenset(
    {
        (ResourceKind.PROJECT, Operation.LIST),
        (ResourceKind.PROJECT, Operation.FIND),
        (ResourceKind.ISSUE, Operation.LIST),
        (ResourceKind.ISSUE, Operation.FIND),
        (ResourceKind.ISSUE, Operation.CREATE),
        (ResourceKind.ISSUE, Operation.UPDATE),
        (ResourceKind.COMMENT, Operation.CREATE),
    }
)


class Adapter(ABC):
    """
    Abstract base class for project-management adapters.

    Subclasses set ``backend`` and ``config_class``, build their transport
    in ``_build_transport`` and implement the abstract operations.

    Example:
        class MyTrackerAdapter(Adapter):
            backend = "mytracker"
            config_class = MyTrackerConfig
            errors = Adapter.errors.rescue_status(409, error=ValidationError)

            def _build_transport(self):
                return HttpTransport(self.config.base_url, ...)

            async def list_projects(self, options=None):
                data = await self._request("GET", "projects")
                return [self._map_project(p) for p in data]
    """

    backend: ClassVar[str] = "base"
    config_class: ClassVar[type[AdapterConfig]] = AdapterConfig
    errors: ClassVar[ErrorMapper] = ErrorMapper.default()
    operation_table: ClassVar[Mapping[tuple[ResourceKind, Operation], str]] = OPERATION_TABLE
    webhook_signature_header: ClassVar[str | None] = None

    def __init__(
        self,
        config: AdapterConfig | Mapping[str, Any],
        *,
        instance: str = DEFAULT_INSTANCE,
        transport: HttpTransport | None = None,
    ):
        if isinstance(config, Mapping):
            config = self.config_class(**config)
        if not isinstance(config, self.config_class):
            raise ConfigurationError(
                f"{type(self).__name__} requires {self.config_class.__name__}, "
                f"got {type(config).__name__}",
                self.backend,
            )
        self.config = config
        self.instance = instance
        self.status_mapper = StatusMapper(config.status_mappings)
        self._handlers = self._build_handler_table()
        self.transport = transport if transport is not None else self._build_transport()

    # =========================================================================
    # Construction hooks
    # =========================================================================

    @abstractmethod
    def _build_transport(self) -> HttpTransport:
        """Create the transport collaborator from ``self.config``."""
        ...

    def _build_handler_table(self) -> dict[tuple[ResourceKind, Operation], str]:
        handlers: dict[tuple[ResourceKind, Operation], str] = {}
        missing: list[str] = []
        for key, name in self.operation_table.items():
            method = getattr(type(self), name, None)
            if method is None or getattr(method, "__isabstractmethod__", False):
                if key in REQUIRED_OPERATIONS:
                    missing.append(name)
                continue
            if method is getattr(Adapter, name, None) and key not in REQUIRED_OPERATIONS:
                continue
            handlers[key] = name
        if missing:
            raise ConfigurationError(
                f"{type(self).__name__} has no handler for required operation(s): "
                f"{', '.join(missing)}",
                self.backend,
            )
        return handlers

    # =========================================================================
    # Dispatch
    # =========================================================================

    def handler(self, kind: ResourceKind, operation: Operation) -> Callable[..., Any]:
        """
        Resolve the bound coroutine function for an operation.

        Raises:
            UnsupportedOperationError: If the adapter does not implement it
        """
        name = self._handlers.get((kind, operation))
        if name is None:
            method_name = self.operation_table.get((kind, operation), f"{operation.value}_{kind.value}")
            raise UnsupportedOperationError(
                f"{type(self).__name__} does not support {method_name} "
                f"({kind.value}.{operation.value})",
                self.backend,
            )
        return getattr(self, name)

    def handles(self, kind: ResourceKind, operation: Operation) -> bool:
        return (kind, operation) in self._handlers

    def association_context(self, owner: Resource) -> dict[str, Any]:
        """Scoping context an association must pass along with ``owner.id``."""
        return {}

    @property
    def projects(self) -> ResourceFactory:
        from ..factory import ResourceFactory

        return ResourceFactory(self, ResourceKind.PROJECT)

    @property
    def issues(self) -> ResourceFactory:
        from ..factory import ResourceFactory

        return ResourceFactory(self, ResourceKind.ISSUE)

    # =========================================================================
    # Capabilities
    # =========================================================================

    @property
    def capabilities(self) -> frozenset[Capability]:
        return detect_capabilities(self)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    # =========================================================================
    # Required operations
    # =========================================================================

    @abstractmethod
    async def list_projects(self, options: Context | None = None) -> list[Project]:
        ...

    @abstractmethod
    async def find_project(self, project_id: Any, context: Context | None = None) -> Project:
        ...

    @abstractmethod
    async def list_issues(self, project_id: Any, options: Context | None = None) -> list[Issue]:
        ...

    @abstractmethod
    async def find_issue(self, issue_id: Any, context: Context | None = None) -> Issue:
        ...

    @abstractmethod
    async def create_issue(self, project_id: Any, attributes: Context) -> Issue:
        ...

    @abstractmethod
    async def update_issue(
        self, issue_id: Any, attributes: Context, context: Context | None = None
    ) -> Issue:
        ...

    @abstractmethod
    async def add_comment(
        self, issue_id: Any, body: str, context: Context | None = None
    ) -> Comment:
        ...

    @abstractmethod
    async def get_current_user(self) -> User:
        ...

    async def connected(self) -> bool:
        """Health check: True when the credentials resolve to a user."""
        try:
            await self.get_current_user()
        except Exception as e:
            logger.warning(f"[{self.backend}] Connection check failed: {e}")
            return False
        return True

    # =========================================================================
    # Optional operations
    # =========================================================================

    def _unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"{type(self).__name__} does not support {operation}", self.backend
        )

    async def create_project(self, attributes: Context) -> Project:
        raise self._unsupported("create_project")

    async def delete_project(self, project_id: Any) -> bool:
        raise self._unsupported("delete_project")

    async def create_list(self, project_id: Any, attributes: Context) -> dict[str, Any]:
        raise self._unsupported("create_list")

    async def delete_issue(self, issue_id: Any, context: Context | None = None) -> bool:
        raise self._unsupported("delete_issue")

    async def list_comments(self, issue_id: Any, options: Context | None = None) -> list[Comment]:
        raise self._unsupported("list_comments")

    def verify_webhook_signature(
        self, raw_body: bytes | str, signature_header: str | None, secret: str | None = None
    ) -> bool:
        raise self._unsupported("verify_webhook_signature")

    def parse_webhook(
        self, raw_body: bytes | str, headers: Mapping[str, str] | None = None
    ) -> WebhookEvent | None:
        raise self._unsupported("parse_webhook")

    async def _create_comment(self, issue_id: Any, attributes: Context) -> Comment:
        """Factory entry point for comment creation: ``body`` plus context keys."""
        payload = dict(attributes)
        body = payload.pop("body", None)
        if not body:
            raise ValueError("Comment creation requires a non-empty 'body'")
        return await self.add_comment(issue_id, body, payload or None)

    # =========================================================================
    # Helpers for subclasses
    # =========================================================================

    def require_context(
        self, context: Context | None, *keys: str, operation: str
    ) -> dict[str, Any]:
        """
        Check scoping keys before any network call.

        Raises:
            MissingContextError: Naming every key that is absent or empty
        """
        context = dict(context or {})
        missing = [key for key in keys if context.get(key) in (None, "")]
        if missing:
            raise MissingContextError(operation, missing, self.backend)
        return context

    def webhook_secret(self, secret: str | None = None) -> str | None:
        """Explicit secret, else the configured one."""
        return secret or self.config.secret("webhook_secret")

    def _translate(self, exc: TransportError) -> PMBridgeError:
        return self.errors.translate(exc, backend=self.backend)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            return await self.transport.request_json(method, path, params=params, json=json)
        except TransportError as exc:
            raise self._translate(exc) from exc

    async def _request_page(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> tuple[list[Any], str | None]:
        """One GET for ``LinkHeaderPaginator``: decoded items plus the Link header."""
        try:
            response = await self.transport.request("GET", path, params=params)
            data = decode_json(response)
        except TransportError as exc:
            raise self._translate(exc) from exc
        items = data if isinstance(data, list) else []
        return items, response.headers.get("Link")

    async def _graphql(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        if not isinstance(self.transport, GraphQLTransport):
            raise ConfigurationError(f"{type(self).__name__} has no GraphQL transport", self.backend)
        try:
            return await self.transport.execute(query, variables)
        except TransportError as exc:
            raise self._translate(exc) from exc

    def link_paginator(self, **kwargs: Any) -> LinkHeaderPaginator:
        return LinkHeaderPaginator(self._request_page, **kwargs)

    def cursor_paginator(self, query: str, **kwargs: Any) -> CursorPaginator:
        async def fetch(variables: Mapping[str, Any]) -> Mapping[str, Any]:
            return await self._graphql(query, variables)

        return CursorPaginator(fetch, **kwargs)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> Adapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(backend={self.backend!r}, instance={self.instance!r})"
