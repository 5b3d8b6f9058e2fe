"""
Adapter registry.

One adapter per ``(backend, instance)``, constructed on first use from the
configuration and cached until ``reset()``. Lookups of an existing adapter
take no lock; first construction for a key is serialized by a per-key lock,
so concurrent first access builds exactly one adapter.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

from .adapters import ADAPTER_TYPES, Adapter
from .config import DEFAULT_INSTANCE, Configuration
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

Key = tuple[str, str]


class AdapterRegistry:
    """
    Lazily constructed, cached adapters.

    Usage:
        config = Configuration()
        config.add_adapter("trello", api_key="...", api_token="...")

        registry = AdapterRegistry(config)
        trello = registry.get("trello")
        boards = await trello.projects.all()
    """

    def __init__(
        self,
        configuration: Configuration,
        adapter_types: Mapping[str, type[Adapter]] | None = None,
    ):
        self.configuration = configuration
        self.adapter_types = dict(adapter_types or ADAPTER_TYPES)
        self._adapters: dict[Key, Adapter] = {}
        self._key_locks: dict[Key, threading.Lock] = {}
        self._lock = threading.Lock()

    def register_adapter_type(self, backend: str, adapter_class: type[Adapter]) -> None:
        self.adapter_types[backend] = adapter_class
        logger.debug(f"Registered adapter type: {backend} -> {adapter_class.__name__}")

    def _lock_for(self, key: Key) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def get(self, backend: str, instance: str = DEFAULT_INSTANCE) -> Adapter:
        """
        Get the adapter for a configured backend instance.

        Raises:
            ConfigurationError: If the backend is unknown or not configured
        """
        key = (backend, instance)
        adapter = self._adapters.get(key)
        if adapter is not None:
            return adapter

        with self._lock_for(key):
            adapter = self._adapters.get(key)
            if adapter is None:
                adapter = self._build(backend, instance)
                self._adapters[key] = adapter
        return adapter

    def _build(self, backend: str, instance: str) -> Adapter:
        adapter_class = self.adapter_types.get(backend)
        if adapter_class is None:
            raise ConfigurationError(
                f"Unknown adapter type {backend!r}; available: {', '.join(sorted(self.adapter_types))}"
            )
        config = self.configuration.adapter_config(backend, instance)
        if config is None:
            raise ConfigurationError(
                f"No configuration for adapter {backend!r} instance {instance!r}", backend
            )
        logger.info(f"[{backend}] Creating adapter instance {instance!r}")
        return adapter_class(config, instance=instance)

    def loaded(self) -> list[Key]:
        """Keys of the adapters constructed so far."""
        return list(self._adapters)

    def reset(self) -> None:
        """
        Drop every cached adapter; the next ``get`` builds a fresh one.

        Per-key locks survive the reset so that a construction still in
        progress keeps serializing later lookups of its key.
        """
        with self._lock:
            self._adapters.clear()
        logger.debug("Adapter registry reset")

    async def aclose(self) -> None:
        """Close every cached adapter's transport and reset."""
        for adapter in list(self._adapters.values()):
            await adapter.close()
        self.reset()

    async def check_health(self) -> dict[Key, bool]:
        """``connected()`` for every configured adapter, building them as needed."""
        return {
            key: await self.get(*key).connected() for key in self.configuration.available()
        }

    def __contains__(self, key: object) -> bool:
        return key in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def __repr__(self) -> str:
        loaded = ", ".join(f"{b}:{i}" for b, i in self._adapters)
        return f"AdapterRegistry([{loaded}])"
