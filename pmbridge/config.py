"""
Configuration for pmbridge adapters.

One pydantic model per backend, all deriving ``AdapterConfig``. Models are
frozen once validated; status mappings are normalized to ``NormalizedStatus``
members so an unknown symbol fails here rather than at the first request.

Security:
    Tokens and webhook secrets use SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from .errors import ConfigurationError
from .status import NormalizedStatus

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "pmbridge (python)"
DEFAULT_INSTANCE = "primary"


class AdapterConfig(BaseModel):
    """Options shared by every adapter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    required_fields: ClassVar[tuple[str, ...]] = ()

    # Transport
    timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")
    max_retries: int = Field(3, ge=0, description="Retries for retryable failures")
    retry_delay: float = Field(1.0, ge=0, description="Base delay for exponential backoff")
    user_agent: str = Field(DEFAULT_USER_AGENT, description="User-Agent header")
    log_requests: bool = Field(False, description="Log request bodies at debug level")
    log_responses: bool = Field(False, description="Log response bodies at debug level")

    # Normalization
    status_mappings: dict[str, dict[str, NormalizedStatus]] = Field(
        default_factory=dict,
        description="Per-project mapping of platform status tokens to normalized statuses",
    )

    # Webhooks
    webhook_secret: SecretStr | None = None

    @model_validator(mode="before")
    @classmethod
    def _check_required(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        missing = [name for name in cls.required_fields if not _present(data.get(name))]
        if missing:
            raise ValueError(
                f"{cls.__name__} is missing required field(s): {', '.join(missing)}"
            )
        return data

    @field_validator("status_mappings", mode="before")
    @classmethod
    def _normalize_mappings(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        return {
            str(project_id): {
                str(token): NormalizedStatus.parse(status) for token, status in table.items()
            }
            for project_id, table in value.items()
        }

    def secret(self, name: str) -> str | None:
        """Plain value of a SecretStr field, or None when unset."""
        value = getattr(self, name)
        if value is None:
            return None
        return value.get_secret_value() if isinstance(value, SecretStr) else str(value)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    return not (isinstance(value, str) and not value.strip())


class TrelloConfig(AdapterConfig):
    """
    Trello credentials and board mappings.

    ``status_mappings`` is keyed by board id; tokens are list ids or list
    names.
    """

    required_fields: ClassVar[tuple[str, ...]] = ("api_key", "api_token")

    api_key: str = Field("", description="Trello application key")
    api_token: SecretStr = Field(default=SecretStr(""), description="Trello member token")
    base_url: str = Field("https://api.trello.com/1/", description="REST API root")
    webhook_callback_url: str | None = Field(
        None, description="Callback URL registered with Trello; part of the signed message"
    )
    comments_page_size: int = Field(50, ge=1, le=1000)


class GitHubProjectConfig(AdapterConfig):
    """
    GitHub Projects V2 credentials.

    ``status_mappings`` is keyed by project node id; tokens are the option
    names of the project's single-select status field.
    """

    required_fields: ClassVar[tuple[str, ...]] = ("access_token", "owner")

    access_token: SecretStr = Field(default=SecretStr(""), description="GitHub token with project scope")
    owner: str = Field("", description="User or organization login owning the projects")
    owner_type: Literal["user", "organization"] = "user"
    endpoint: str = Field("https://api.github.com/graphql", description="GraphQL endpoint")
    status_field_name: str = Field("Status", description="Single-select field holding item status")
    page_size: int = Field(50, ge=1, le=100)


CONFIG_TYPES: Mapping[str, type[AdapterConfig]] = {
    "trello": TrelloConfig,
    "github_project": GitHubProjectConfig,
}


class Configuration:
    """
    Adapter configurations keyed by ``(backend, instance)``.

    Example:
        config = Configuration()
        config.add_adapter("trello", api_key="...", api_token="...")
        config.add_adapter("trello", "archive", api_key="...", api_token="...")
    """

    def __init__(
        self,
        config_types: Mapping[str, type[AdapterConfig]] | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.config_types = dict(config_types or CONFIG_TYPES)
        self.user_agent = user_agent
        self._configs: dict[tuple[str, str], AdapterConfig] = {}

    def add_adapter(
        self, backend: str, instance: str = DEFAULT_INSTANCE, **options: Any
    ) -> AdapterConfig:
        """
        Validate and store configuration for one adapter instance.

        Raises:
            ConfigurationError: If the backend has no configuration class
            ValueError: If required fields are missing (pydantic ValidationError)
        """
        config_class = self.config_types.get(backend)
        if config_class is None:
            raise ConfigurationError(
                f"Unknown backend {backend!r}; available: {', '.join(sorted(self.config_types))}"
            )
        options.setdefault("user_agent", self.user_agent)
        config = config_class(**options)
        if (backend, instance) in self._configs:
            logger.info(f"[{backend}] Replacing configuration for instance {instance!r}")
        self._configs[(backend, instance)] = config
        return config

    def adapter_config(self, backend: str, instance: str = DEFAULT_INSTANCE) -> AdapterConfig | None:
        return self._configs.get((backend, instance))

    def available(self) -> list[tuple[str, str]]:
        """Configured ``(backend, instance)`` pairs in registration order."""
        return list(self._configs)

    def __contains__(self, key: object) -> bool:
        return key in self._configs
