"""
Status normalization.

Platform workflow state (a Trello list, a GitHub Projects single-select
option, a Jira status name) is mapped per project onto a fixed vocabulary.

Precedence when normalizing:
    1. Mapped symbol for the token in the project's table
    2. ``open`` when the token is absent
    3. ``closed`` whenever the record is archived/closed, overriding 1 and 2

Reverse lookup never guesses: it returns the first token mapped to the
requested symbol or raises ``ConfigurationError``.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping
from enum import Enum
from types import MappingProxyType

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class NormalizedStatus(str, Enum):
    """The fixed status vocabulary shared by every backend."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    ON_HOLD = "on_hold"
    CLOSED = "closed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | NormalizedStatus) -> NormalizedStatus:
        """Coerce a configuration value, rejecting anything outside the vocabulary."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ConfigurationError(
                f"Unknown status {value!r}; expected one of: {allowed}"
            ) from None


StatusTable = Mapping[str, NormalizedStatus]


def freeze_mappings(
    mappings: Mapping[Hashable, Mapping[str, str | NormalizedStatus]] | None,
) -> Mapping[str, StatusTable]:
    """Validate and deep-freeze ``{project_id: {token: status}}``."""
    frozen: dict[str, StatusTable] = {}
    for project_id, table in (mappings or {}).items():
        frozen[str(project_id)] = MappingProxyType(
            {str(token): NormalizedStatus.parse(status) for token, status in table.items()}
        )
    return MappingProxyType(frozen)


class StatusMapper:
    """
    Per-adapter status tables keyed by project/board identifier.

    Usage:
        mapper = StatusMapper({"board-1": {"list_42": "in_progress", "list_99": "closed"}})
        mapper.normalize_status("list_42", "board-1")               # IN_PROGRESS
        mapper.normalize_status("list_42", "board-1", archived=True)  # CLOSED
        mapper.denormalize_status("closed", "board-1")              # "list_99"
    """

    __slots__ = ("_mappings",)

    def __init__(self, mappings: Mapping[Hashable, Mapping[str, str | NormalizedStatus]] | None = None):
        self._mappings = freeze_mappings(mappings)

    @property
    def mappings(self) -> Mapping[str, StatusTable]:
        return self._mappings

    def table_for(self, project_id: Hashable) -> StatusTable:
        return self._mappings.get(str(project_id), MappingProxyType({}))

    def has_token(self, project_id: Hashable, token: object) -> bool:
        return token is not None and str(token) in self.table_for(project_id)

    def normalize_status(
        self,
        token: object,
        project_id: Hashable,
        *,
        archived: bool = False,
    ) -> NormalizedStatus:
        """
        Map a platform token to the normalized vocabulary.

        The archived flag always wins, even over an explicit mapping of the
        token to another symbol.
        """
        status = NormalizedStatus.OPEN
        if token is not None:
            status = self.table_for(project_id).get(str(token), NormalizedStatus.OPEN)
        if archived:
            return NormalizedStatus.CLOSED
        return status

    def denormalize_status(self, status: str | NormalizedStatus, project_id: Hashable) -> str:
        """
        Find the platform token for a normalized status.

        With several tokens mapped to the same symbol the first one in table
        order wins.

        Raises:
            ConfigurationError: If the project has no table or no token maps to ``status``
        """
        symbol = NormalizedStatus.parse(status)
        table = self._mappings.get(str(project_id))
        if table is None:
            raise ConfigurationError(
                f"No status mapping configured for project {project_id!r}; "
                f"cannot map status {symbol.value!r}"
            )
        for token, mapped in table.items():
            if mapped is symbol:
                return token
        raise ConfigurationError(
            f"Status {symbol.value!r} is not mapped for project {project_id!r}"
        )

    def valid_statuses(self, project_id: Hashable) -> list[NormalizedStatus]:
        """Statuses that can be set on issues of this project, in vocabulary order."""
        mapped = set(self.table_for(project_id).values())
        return [status for status in NormalizedStatus if status in mapped]

    def status_known(self, project_id: Hashable, status: str | NormalizedStatus | None) -> bool:
        """Whether ``denormalize_status`` would succeed for this project."""
        if status is None:
            return False
        try:
            symbol = NormalizedStatus.parse(status)
        except ConfigurationError:
            return False
        return symbol in self.table_for(project_id).values()

    def __repr__(self) -> str:
        return f"StatusMapper(projects={list(self._mappings)})"
