"""
Resource factories and associations.

``ResourceFactory`` is the collection-style entry point for one resource
kind on one adapter (``adapter.issues.all(board_id)``). ``AssociationProxy``
is the same dispatch scoped to an owning resource
(``project.issues.all()``, ``issue.comments.create(body="...")``).

Both resolve the adapter operation through ``Adapter.handler``; a missing
capability raises ``UnsupportedOperationError``, which is distinct from a
missing resource. Only ``find`` swallows ``NotFoundError``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .errors import NotFoundError
from .resources import RESOURCE_CLASSES, Resource, ResourceKind

if TYPE_CHECKING:
    from .adapters.base import Adapter

logger = logging.getLogger(__name__)


def _matches(resource: Resource, conditions: Mapping[str, Any]) -> bool:
    missing = object()
    return all(getattr(resource, key, missing) == value for key, value in conditions.items())


class ResourceFactory:
    """
    Collection operations for one resource kind.

    Usage:
        boards = await adapter.projects.all()
        card = await adapter.issues.find("abc123")          # None when absent
        todo = await adapter.issues.where({"status": NormalizedStatus.OPEN}, board_id)
        card = await adapter.issues.create(board_id, list_id="l1", title="Ship it")
    """

    def __init__(self, adapter: Adapter, kind: ResourceKind):
        self.adapter = adapter
        self.kind = kind

    def _handler(self, operation_name: str):
        from .adapters.base import Operation

        return self.adapter.handler(self.kind, Operation(operation_name))

    async def all(self, *scope: Any, **options: Any) -> list[Resource]:
        """All resources in ``scope`` (e.g. a project id for issues)."""
        return await self._handler("list")(*scope, options)

    async def find(self, resource_id: Any, **context: Any) -> Resource | None:
        """The resource with ``resource_id``, or None when the backend reports it missing."""
        handler = self._handler("find")
        try:
            return await handler(resource_id, context)
        except NotFoundError:
            logger.debug(f"[{self.adapter.backend}] {self.kind.value} {resource_id!r} not found")
            return None

    async def first(self, *scope: Any, **options: Any) -> Resource | None:
        resources = await self.all(*scope, **options)
        return resources[0] if resources else None

    async def where(
        self, conditions: Mapping[str, Any], *scope: Any, **options: Any
    ) -> list[Resource]:
        """Filter ``all(*scope)`` in memory by attribute equality."""
        return [r for r in await self.all(*scope, **options) if _matches(r, conditions)]

    async def create(self, *scope: Any, **attributes: Any) -> Resource:
        return await self._handler("create")(*scope, attributes)

    def build(self, **attributes: Any) -> Resource:
        """An unsaved resource bound to the adapter; nothing is sent."""
        resource_class = RESOURCE_CLASSES[self.kind]
        return resource_class(
            adapter=self.adapter,
            backend=self.adapter.backend,
            raw=dict(attributes),
            **attributes,
        )

    def __repr__(self) -> str:
        return f"ResourceFactory({self.adapter!r}, {self.kind.value})"


class AssociationProxy:
    """
    Lazy collection of resources owned by another resource.

    The owner's id is passed as the scope of every call, and the adapter's
    ``association_context(owner)`` is merged into find contexts (and into the
    payload of comment creation) for backends that need more than the id.
    """

    _OWNER_KEYS = {ResourceKind.ISSUE: "project_id", ResourceKind.COMMENT: "issue_id"}

    def __init__(self, owner: Resource, kind: ResourceKind):
        self.owner = owner
        self.kind = kind

    @property
    def adapter(self) -> Adapter:
        return self.owner.adapter

    def _owner_id(self) -> Any:
        owner_id = getattr(self.owner, "id", None)
        if owner_id is None:
            raise ValueError(
                f"{type(self.owner).__name__} has no id; save it before using its associations"
            )
        return owner_id

    def _handler(self, operation_name: str):
        from .adapters.base import Operation

        return self.adapter.handler(self.kind, Operation(operation_name))

    async def all(self, **options: Any) -> list[Resource]:
        return await self._handler("list")(self._owner_id(), options)

    async def find(self, resource_id: Any, **context: Any) -> Resource | None:
        adapter = self.adapter
        handler = self._handler("find")
        merged = {**adapter.association_context(self.owner), **context}
        try:
            return await handler(resource_id, merged)
        except NotFoundError:
            logger.debug(f"[{adapter.backend}] {self.kind.value} {resource_id!r} not found")
            return None

    async def first(self, **options: Any) -> Resource | None:
        resources = await self.all(**options)
        return resources[0] if resources else None

    async def where(self, conditions: Mapping[str, Any], **options: Any) -> list[Resource]:
        return [r for r in await self.all(**options) if _matches(r, conditions)]

    async def create(self, **attributes: Any) -> Resource:
        adapter = self.adapter
        handler = self._handler("create")
        if self.kind is ResourceKind.COMMENT:
            attributes = {**adapter.association_context(self.owner), **attributes}
        return await handler(self._owner_id(), attributes)

    def build(self, **attributes: Any) -> Resource:
        adapter = self.adapter
        owner_key = self._OWNER_KEYS.get(self.kind)
        if owner_key is not None:
            attributes = {**attributes, owner_key: self._owner_id()}
        resource_class = RESOURCE_CLASSES[self.kind]
        return resource_class(
            adapter=adapter,
            backend=adapter.backend,
            raw=dict(attributes),
            **attributes,
        )

    def __repr__(self) -> str:
        return f"AssociationProxy({self.owner!r}, {self.kind.value})"
