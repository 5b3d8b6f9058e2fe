"""
Normalized resources.

Resources are immutable value objects carrying a fixed set of typed fields
plus ``raw``, the untranslated platform payload. Each resource keeps a weak
reference to the adapter that produced it; the adapter never references its
resources. Once the adapter is released, ``resource.adapter`` raises
``ConfigurationError`` and associations can no longer be resolved.
"""

from __future__ import annotations

import weakref
from collections.abc import Mapping
from dataclasses import InitVar, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from .errors import ConfigurationError
from .status import NormalizedStatus

if TYPE_CHECKING:
    from .adapters.base import Adapter
    from .factory import AssociationProxy

Identifier = str | int


class ResourceKind(str, Enum):
    PROJECT = "project"
    ISSUE = "issue"
    COMMENT = "comment"
    USER = "user"


@dataclass(frozen=True, kw_only=True, slots=True)
class Resource:
    """Base class for normalized resources."""

    backend: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)
    adapter: InitVar[Adapter | None] = None
    _adapter_ref: weakref.ref | None = field(default=None, init=False, repr=False, compare=False)

    kind: ClassVar[ResourceKind] = ResourceKind.PROJECT

    def __post_init__(self, adapter: Adapter | None) -> None:
        if adapter is not None:
            object.__setattr__(self, "_adapter_ref", weakref.ref(adapter))
            if self.backend is None:
                object.__setattr__(self, "backend", adapter.backend)

    def _get_adapter(self) -> Adapter:
        adapter = self._adapter_ref() if self._adapter_ref is not None else None
        if adapter is None:
            raise ConfigurationError(
                f"{type(self).__name__} is not bound to a live adapter", self.backend
            )
        return adapter

    def to_dict(self) -> dict[str, Any]:
        """Typed fields as plain data, without ``raw``."""
        result: dict[str, Any] = {}
        for f in fields(self):
            if f.name in ("raw", "_adapter_ref"):
                continue
            result[f.name] = _plain(getattr(self, f.name))
        return result


def _plain(value: Any) -> Any:
    if isinstance(value, Resource):
        return value.to_dict()
    if isinstance(value, tuple | list):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    return value


# The adapter accessor is a property so the InitVar name stays usable as a
# constructor keyword.
Resource.adapter = property(Resource._get_adapter)  # type: ignore[assignment]


@dataclass(frozen=True, kw_only=True, slots=True)
class User(Resource):
    id: Identifier | None = None
    name: str | None = None
    email: str | None = None

    kind: ClassVar[ResourceKind] = ResourceKind.USER


@dataclass(frozen=True, kw_only=True, slots=True)
class Project(Resource):
    id: Identifier | None = None
    key: str | None = None
    name: str | None = None
    description: str | None = None

    kind: ClassVar[ResourceKind] = ResourceKind.PROJECT

    @property
    def issues(self) -> AssociationProxy:
        """Issues of this project, resolved lazily through the adapter."""
        from .factory import AssociationProxy

        return AssociationProxy(self, ResourceKind.ISSUE)


@dataclass(frozen=True, kw_only=True, slots=True)
class Issue(Resource):
    id: Identifier | None = None
    key: str | None = None
    title: str | None = None
    description: str | None = None
    status: NormalizedStatus = NormalizedStatus.OPEN
    assignees: tuple[User, ...] = ()
    reporter: User | None = None
    project_id: Identifier | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    due_on: date | None = None
    priority: str | None = None

    kind: ClassVar[ResourceKind] = ResourceKind.ISSUE

    @property
    def comments(self) -> AssociationProxy:
        """Comments on this issue, resolved lazily through the adapter."""
        from .factory import AssociationProxy

        return AssociationProxy(self, ResourceKind.COMMENT)


@dataclass(frozen=True, kw_only=True, slots=True)
class Comment(Resource):
    id: Identifier | None = None
    body: str | None = None
    author: User | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    issue_id: Identifier | None = None

    kind: ClassVar[ResourceKind] = ResourceKind.COMMENT


RESOURCE_CLASSES: Mapping[ResourceKind, type[Resource]] = {
    ResourceKind.PROJECT: Project,
    ResourceKind.ISSUE: Issue,
    ResourceKind.COMMENT: Comment,
    ResourceKind.USER: User,
}
