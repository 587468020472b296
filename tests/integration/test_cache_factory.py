"""
cachefront - Cache Factory Integration Tests

Tests for the cache factory that creates and manages cache adapters and managers.
Tests registry behavior, configuration, backend selection and lifecycle management.

Python 3.12+ with modern async patterns and type hints.
"""

import asyncio
import sys
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from cachefront.cache.backends.memcached import MemcachedCacheBackend
from cachefront.cache.backends.memory import MemoryCacheBackend
from cachefront.cache.backends.none import NoneCacheBackend
from cachefront.cache.factory import (
    close_all_caches,
    create_cache,
    create_manager,
    create_telemetry,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
)
from cachefront.cache.interface import CacheAdapter, CacheCapability
from cachefront.cache.manager import CacheManager, EnhancedCacheManager
from cachefront.config import CacheBackend, CacheConfig, ManagerConfig, TelemetryBackend, TelemetryConfig
from cachefront.errors import ConfigurationError, DependencyError
from cachefront.observability import NoOpTelemetry, PrometheusTelemetry, SQLiteTelemetry

# Check if Redis is available
try:
    import socket

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(1)
    redis_available = sock.connect_ex(("localhost", 6379)) == 0
    sock.close()
except OSError:
    redis_available = False


class TestCacheFactory:
    """Test suite for cache factory functionality."""

    @pytest_asyncio.fixture(autouse=True)
    async def cleanup(self, mock_env_memory: None) -> AsyncGenerator[None, None]:
        """Clean up cache instances after each test."""
        yield
        await close_all_caches()
        reset_cache_factory()

    async def test_create_memory_cache_default(self) -> None:
        """Test creating a memory cache from the environment configuration."""
        cache = create_cache()

        assert isinstance(cache, MemoryCacheBackend)
        assert isinstance(cache, CacheAdapter)
        assert cache.get_namespace() == "test"

        await cache.set("test_key", "test_value")
        assert await cache.get("test_key") == "test_value"

    async def test_create_memory_cache_explicit_config(self) -> None:
        """Test creating a memory cache with explicit configuration."""
        config = CacheConfig(
            backend=CacheBackend.MEMORY,
            namespace="test_ns",
            max_size=50,
            ttl_seconds=1800,
        )

        cache = create_cache(config=config, name="custom")

        assert isinstance(cache, MemoryCacheBackend)
        assert cache.max_size == 50
        assert cache.default_ttl == 1800
        await cache.set("key1", "value1")
        assert await cache.get("key1") == "value1"

    async def test_create_none_cache(self) -> None:
        cache = create_cache(config=CacheConfig(backend=CacheBackend.NONE), name="disabled")

        assert isinstance(cache, NoneCacheBackend)
        assert await cache.set("key", "value") is False
        assert await cache.get("key") is None

    async def test_create_memcached_cache(self) -> None:
        """The client connects lazily, so no server is needed to build the adapter."""
        config = CacheConfig(backend=CacheBackend.MEMCACHED, memcached_servers=["mc1:11211", "mc2:11211"])

        cache = create_cache(config=config, name="memcached")

        assert isinstance(cache, MemcachedCacheBackend)
        assert cache.capability == CacheCapability.BASIC

    async def test_backend_given_as_string(self) -> None:
        config = CacheConfig.model_construct(backend="memory")

        assert isinstance(create_cache(config=config, name="plain"), MemoryCacheBackend)

    async def test_unknown_backend(self) -> None:
        config = CacheConfig.model_construct(backend="dynamodb")

        with pytest.raises(ConfigurationError, match="Unknown cache backend"):
            create_cache(config=config, name="unknown")

        assert "unknown" not in list_cache_instances()

    async def test_redis_without_url(self) -> None:
        config = CacheConfig.model_construct(backend=CacheBackend.REDIS, redis_url=None)

        with pytest.raises(ConfigurationError, match="REDIS_URL"):
            create_cache(config=config, name="redis_no_url")

    async def test_builder_errors_become_configuration_errors(self) -> None:
        config = CacheConfig.model_construct(backend=CacheBackend.MEMORY, namespace="bad::namespace")

        with pytest.raises(ConfigurationError, match="Failed to create cache instance"):
            create_cache(config=config, name="broken")

    async def test_missing_client_library(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setitem(sys.modules, "cachefront.cache.backends.memcached", None)

        with pytest.raises(DependencyError, match="pymemcache"):
            create_cache(config=CacheConfig(backend=CacheBackend.MEMCACHED), name="no_client")

    @pytest.mark.skipif(not redis_available, reason="Redis server not available")
    async def test_create_redis_cache_with_config(self, test_redis_url: str) -> None:
        """Test creating a Redis cache with configuration."""
        config = CacheConfig(
            backend=CacheBackend.REDIS,
            redis_url=test_redis_url,
            namespace="test_redis",
            ttl_seconds=3600,
        )

        cache = create_cache(config=config, name="redis_test")

        await cache.set("key1", "value1")
        assert await cache.get("key1") == "value1"
        await cache.delete("key1")

    async def test_factory_with_unreachable_redis(self) -> None:
        """The backend is built without connecting; failures surface on first use."""
        config = CacheConfig(
            backend=CacheBackend.REDIS,
            redis_url="redis://invalid-host:9999/0",
            namespace="test",
        )

        cache = create_cache(config=config, name="invalid_redis")

        assert cache.get_name() == "redis"

    async def test_singleton_behavior(self) -> None:
        """Test that factory returns the same instance for the same name."""
        cache1 = create_cache(name="singleton_test")
        cache2 = create_cache(name="singleton_test")

        assert cache1 is cache2

    async def test_multiple_named_instances(self) -> None:
        """Test creating multiple named cache instances."""
        cache1 = create_cache(name="cache1")
        cache2 = create_cache(name="cache2")

        assert cache1 is not cache2

        await cache1.set("key", "value1")
        await cache2.set("key", "value2")

        assert await cache1.get("key") == "value1"
        assert await cache2.get("key") == "value2"

    async def test_get_cache_creates_if_not_exists(self) -> None:
        """Test that get_cache creates instance if it doesn't exist."""
        cache = get_cache("new_instance")

        await cache.set("key", "value")
        assert await cache.get("key") == "value"
        assert get_cache("new_instance") is cache

    async def test_default_cache_name(self) -> None:
        """Test that 'default' is the default cache name."""
        cache1 = create_cache()
        cache2 = get_cache()

        assert cache1 is cache2
        assert "default" in list_cache_instances()

    async def test_list_cache_instances(self) -> None:
        """Test listing all cache instances."""
        assert list_cache_instances() == []

        create_cache(name="cache1")
        create_cache(name="cache2")
        create_cache(name="cache3")

        assert sorted(list_cache_instances()) == ["cache1", "cache2", "cache3"]

    async def test_close_all_caches(self) -> None:
        """Test closing all cache instances."""
        cache1 = create_cache(name="cache1")
        cache2 = create_cache(name="cache2")

        await cache1.set("key", "value")
        await cache2.set("key", "value")

        await close_all_caches()

        assert list_cache_instances() == []

    async def test_reset_cache_factory(self) -> None:
        """Test resetting the cache factory."""
        create_cache(name="cache1")
        create_cache(name="cache2")

        assert len(list_cache_instances()) == 2

        reset_cache_factory()

        assert list_cache_instances() == []

    async def test_namespace_isolation(self) -> None:
        """Test that different namespaces are properly isolated."""
        cache1 = create_cache(config=CacheConfig(backend=CacheBackend.MEMORY, namespace="ns1"), name="cache_ns1")
        cache2 = create_cache(config=CacheConfig(backend=CacheBackend.MEMORY, namespace="ns2"), name="cache_ns2")

        await cache1.set("shared_key", "value1")
        await cache2.set("shared_key", "value2")

        assert await cache1.get("shared_key") == "value1"
        assert await cache2.get("shared_key") == "value2"

    async def test_concurrent_factory_calls(self) -> None:
        """Concurrent callers of the same name share one instance."""

        async def create_and_use_cache(name: str) -> str:
            cache = create_cache(name=name)
            await cache.set("key", name)
            return str(await cache.get("key"))

        results = await asyncio.gather(
            create_and_use_cache("cache1"),
            create_and_use_cache("cache2"),
            create_and_use_cache("cache3"),
            create_and_use_cache("cache1"),
        )

        assert results == ["cache1", "cache2", "cache3", "cache1"]
        assert len(list_cache_instances()) == 3

    async def test_ttl_configuration(self) -> None:
        """Test that the configured TTL applies when a write gives none."""
        cache = create_cache(config=CacheConfig(backend=CacheBackend.MEMORY, ttl_seconds=1), name="ttl_test")

        await cache.set("key", "value", ttl=None)
        assert await cache.get("key") == "value"

        await asyncio.sleep(1.1)

        assert await cache.get("key") is None

    async def test_max_size_configuration(self) -> None:
        """Test that max_size configuration is properly applied."""
        cache = create_cache(config=CacheConfig(backend=CacheBackend.MEMORY, max_size=3), name="maxsize_test")

        for i in range(4):
            await cache.set(f"key{i}", f"value{i}")

        stats = await cache.get_stats()
        assert stats["evictions"] >= 1
        assert await cache.get("key0") is None


class TestManagerFactory:
    """create_manager picks the manager type from the adapter capability."""

    @pytest_asyncio.fixture(autouse=True)
    async def cleanup(self, mock_env_memory: None) -> AsyncGenerator[None, None]:
        yield
        await close_all_caches()
        reset_cache_factory()

    async def test_enhanced_manager_for_memory(self) -> None:
        manager = create_manager()

        assert isinstance(manager, EnhancedCacheManager)
        assert manager.get_default_namespace() == "test"

        assert await manager.increment("counter", 5) == 5
        assert await manager.decrement("counter", 2) == 3

    async def test_basic_manager_for_memcached(self) -> None:
        manager = create_manager(CacheConfig(backend=CacheBackend.MEMCACHED), name="memcached")

        assert type(manager) is CacheManager

    async def test_manager_config_is_applied(self) -> None:
        manager = create_manager(
            CacheConfig(backend=CacheBackend.MEMORY, namespace="base"),
            name="configured",
            manager_config=ManagerConfig(case_sensitive=True, default_namespace="api", max_retries=5),
        )

        assert manager.case_sensitive is True
        assert manager.retry_policy.max_attempts == 5
        assert isinstance(manager, EnhancedCacheManager)
        assert manager.get_default_namespace() == "api"

    async def test_managers_share_the_named_adapter(self) -> None:
        first = create_manager(name="shared")
        second = create_manager(name="shared")

        await first.set("key", "value")

        assert first.adapter is second.adapter
        assert await second.get("key") == "value"

    async def test_explicit_telemetry(self) -> None:
        registry = CollectorRegistry()
        manager = create_manager(name="metered", telemetry=PrometheusTelemetry(registry))

        await manager.set("key", "value")

        labels = {"operation": "set", "adapter": "memory"}
        assert registry.get_sample_value("cache_operation_duration_seconds_count", labels) == 1.0


class TestTelemetryFactory:
    def test_default_is_noop(self, mock_env_memory: None) -> None:
        assert isinstance(create_telemetry(), NoOpTelemetry)

    def test_sink_is_shared_per_backend(self) -> None:
        config = TelemetryConfig(backend=TelemetryBackend.NONE)

        assert create_telemetry(config) is create_telemetry(config)

    async def test_sqlite_sink(self, tmp_path: Path) -> None:
        config = TelemetryConfig(backend=TelemetryBackend.SQLITE, metrics_db_path=str(tmp_path / "metrics.db"))

        sink = create_telemetry(config)

        assert isinstance(sink, SQLiteTelemetry)
        await close_all_caches()

    def test_unknown_backend(self) -> None:
        config = TelemetryConfig.model_construct(backend="statsd")

        with pytest.raises(ConfigurationError, match="Unknown telemetry backend"):
            create_telemetry(config)
