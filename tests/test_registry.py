"""
Tests for the adapter registry.
"""

import threading
import time

import pytest

from conftest import MemoryAdapter
from pmbridge.adapters import GitHubProjectAdapter, TrelloAdapter
from pmbridge.config import AdapterConfig, Configuration
from pmbridge.errors import AuthenticationError, ConfigurationError
from pmbridge.registry import AdapterRegistry


class SlowMemoryAdapter(MemoryAdapter):
    """Counts constructions and widens the race window."""

    constructed = 0
    _count_lock = threading.Lock()

    def __init__(self, config=None, **kwargs):
        time.sleep(0.05)
        with SlowMemoryAdapter._count_lock:
            SlowMemoryAdapter.constructed += 1
        super().__init__(config, **kwargs)


class GatedMemoryAdapter(MemoryAdapter):
    """Blocks inside construction until released."""

    constructed = 0
    started = threading.Event()
    release = threading.Event()

    def __init__(self, config=None, **kwargs):
        GatedMemoryAdapter.constructed += 1
        GatedMemoryAdapter.started.set()
        GatedMemoryAdapter.release.wait(timeout=5)
        super().__init__(config, **kwargs)


@pytest.fixture
def configuration():
    config = Configuration()
    config.add_adapter("trello", api_key="k", api_token="t")
    config.add_adapter("github_project", access_token="ghp", owner="octo")
    return config


@pytest.fixture
def registry(configuration):
    return AdapterRegistry(configuration)


class TestAdapterRegistry:
    """Tests for lazy construction and caching."""

    def test_builds_configured_adapter(self, registry):
        adapter = registry.get("trello")
        assert isinstance(adapter, TrelloAdapter)
        assert adapter.instance == "primary"
        assert isinstance(registry.get("github_project"), GitHubProjectAdapter)

    def test_caches_adapter(self, registry):
        assert registry.get("trello") is registry.get("trello")
        assert registry.loaded() == [("trello", "primary")]
        assert ("trello", "primary") in registry
        assert len(registry) == 1

    def test_instances_are_independent(self, configuration, registry):
        configuration.add_adapter("trello", "archive", api_key="k2", api_token="t2")
        primary = registry.get("trello")
        archive = registry.get("trello", "archive")
        assert primary is not archive
        assert archive.instance == "archive"

    def test_unknown_adapter_type(self, registry):
        with pytest.raises(ConfigurationError, match="Unknown adapter type 'jira'"):
            registry.get("jira")

    def test_unconfigured_instance(self, registry):
        with pytest.raises(ConfigurationError, match="No configuration"):
            registry.get("trello", "other")

    def test_reset_builds_fresh_adapter(self, registry):
        first = registry.get("trello")
        registry.reset()
        assert len(registry) == 0
        assert registry.get("trello") is not first

    def test_register_adapter_type(self):
        config = Configuration({"memory": AdapterConfig})
        config.add_adapter("memory")
        registry = AdapterRegistry(config)
        registry.register_adapter_type("memory", MemoryAdapter)

        assert isinstance(registry.get("memory"), MemoryAdapter)

    def test_concurrent_first_access_builds_once(self):
        config = Configuration({"memory": AdapterConfig})
        config.add_adapter("memory")
        registry = AdapterRegistry(config, {"memory": SlowMemoryAdapter})
        SlowMemoryAdapter.constructed = 0

        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(registry.get("memory"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert SlowMemoryAdapter.constructed == 1
        assert len(results) == 8
        assert all(adapter is results[0] for adapter in results)

    def test_reset_during_construction_builds_once(self):
        config = Configuration({"memory": AdapterConfig})
        config.add_adapter("memory")
        registry = AdapterRegistry(config, {"memory": GatedMemoryAdapter})
        GatedMemoryAdapter.constructed = 0
        GatedMemoryAdapter.started.clear()
        GatedMemoryAdapter.release.clear()
        results = []

        first = threading.Thread(target=lambda: results.append(registry.get("memory")))
        first.start()
        assert GatedMemoryAdapter.started.wait(timeout=5)

        registry.reset()
        second = threading.Thread(target=lambda: results.append(registry.get("memory")))
        second.start()
        time.sleep(0.05)
        GatedMemoryAdapter.release.set()
        first.join()
        second.join()

        assert GatedMemoryAdapter.constructed == 1
        assert len(results) == 2
        assert results[0] is results[1]

    @pytest.mark.asyncio
    async def test_check_health(self):
        config = Configuration({"memory": AdapterConfig})
        config.add_adapter("memory")
        config.add_adapter("memory", "broken")
        registry = AdapterRegistry(config, {"memory": MemoryAdapter})
        registry.get("memory", "broken").fail_with = AuthenticationError("expired", "memory")

        health = await registry.check_health()

        assert health == {("memory", "primary"): True, ("memory", "broken"): False}

    @pytest.mark.asyncio
    async def test_aclose_resets(self, registry):
        registry.get("trello")
        await registry.aclose()
        assert len(registry) == 0
