"""
cachefront - Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
Python 3.12+ with modern type hints and async patterns.
"""

import os
import socket
from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from redis.asyncio import Redis

from cachefront.cache.backends.memory import MemoryCacheBackend
from cachefront.cache.manager import CacheManager, EnhancedCacheManager
from cachefront.config import ManagerConfig

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"


# Redis availability checker
def is_redis_available() -> bool:
    """Check if Redis server is available for testing."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("localhost", 6379))
        sock.close()
        return result == 0
    except OSError:
        return False


# Skip marker for Redis tests
redis_available = pytest.mark.skipif(not is_redis_available(), reason="Redis server not available")


@pytest.fixture
def test_redis_url() -> str:
    """Get Redis URL for testing (database 15 for isolation)."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")


@pytest_asyncio.fixture
async def redis_client(test_redis_url: str) -> AsyncGenerator[Redis, None]:
    """
    Create a Redis client for testing.

    Automatically skips tests if Redis is not available.
    Clears the test database before and after each test.
    """
    client: Redis = Redis.from_url(test_redis_url, decode_responses=True)

    # Ensure we can connect
    try:
        await client.ping()
    except Exception as e:
        await client.aclose()
        pytest.skip(f"Redis not available for testing: {e}")

    # Clear test database before test
    await client.flushdb()

    yield client

    # Cleanup after test
    try:
        await client.flushdb()
    finally:
        await client.aclose()


@pytest.fixture
def fast_retry_config() -> ManagerConfig:
    """Manager configuration with retries that do not slow tests down."""
    return ManagerConfig(max_retries=3, retry_delay=0.001, retry_max_delay=0.01, retry_jitter=0.0)


@pytest.fixture
def memory_backend() -> MemoryCacheBackend:
    """Fresh memory backend in the "test" namespace."""
    return MemoryCacheBackend(max_size=100, default_ttl=3600, namespace="test")


@pytest.fixture
def manager(memory_backend: MemoryCacheBackend, fast_retry_config: ManagerConfig) -> CacheManager:
    """Basic manager over a memory backend."""
    return CacheManager(memory_backend, fast_retry_config)


@pytest.fixture
def enhanced_manager(memory_backend: MemoryCacheBackend, fast_retry_config: ManagerConfig) -> EnhancedCacheManager:
    """Enhanced manager over a memory backend."""
    return EnhancedCacheManager(memory_backend, fast_retry_config)


@pytest.fixture
def mock_env_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for memory cache backend."""
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("CACHE_MAX_SIZE", "100")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "3600")
    monkeypatch.setenv("CACHE_NAMESPACE", "test")


@pytest.fixture
def mock_env_redis(monkeypatch: pytest.MonkeyPatch, test_redis_url: str) -> None:
    """Set environment variables for Redis cache backend."""
    if not is_redis_available():
        pytest.skip("Redis not available")
    monkeypatch.setenv("CACHE_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", test_redis_url)
    monkeypatch.setenv("REDIS_MAX_CONNECTIONS", "5")
    monkeypatch.setenv("REDIS_SOCKET_TIMEOUT", "2")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "3600")
    monkeypatch.setenv("CACHE_NAMESPACE", "test")


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing (every value is cacheable)."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }


@pytest.fixture(autouse=True)
def reset_cache_factory() -> Generator[None, None, None]:
    """Reset cache factory and global config after each test to prevent state leakage."""
    yield
    from cachefront.cache.factory import reset_cache_factory
    from cachefront.config import loader

    reset_cache_factory()
    loader._config_instance = None
