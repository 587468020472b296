"""
cachefront - Cache Factory

Canonical factory for creating cache adapters and managers from configuration.

Key points:
- Backend selected with CACHE_BACKEND=memory|redis|memcached|none (memory by default)
- Redis and Memcached clients are imported lazily, only when selected
- Named instances are registered so the same adapter is reused across call sites
- All configuration is typed and validated via Pydantic models

Examples:
    from cachefront.cache.factory import create_cache, create_manager

    # Uses env-configured backend (memory by default)
    cache = create_cache()

    # Or explicitly supply a CacheConfig (e.g., for tests)
    from cachefront.config import CacheConfig, CacheBackend
    cfg = CacheConfig(backend=CacheBackend.MEMORY, ttl_seconds=600)
    manager = create_manager(cfg, name="test")
"""

from __future__ import annotations

import logging

from ..config import CacheBackend, CacheConfig, ManagerConfig, TelemetryBackend, TelemetryConfig, get_config
from ..errors import ConfigurationError, DependencyError
from ..observability.telemetry import NoOpTelemetry, PrometheusTelemetry, SQLiteTelemetry, Telemetry
from .backends.memory import MemoryCacheBackend
from .backends.none import NoneCacheBackend
from .interface import CacheAdapter, CacheCapability
from .manager import CacheManager, EnhancedCacheManager

logger = logging.getLogger(__name__)

# Global cache instances registry
_cache_instances: dict[str, CacheAdapter] = {}

# One sink per telemetry backend; Prometheus metric names are process-wide
_telemetry_sinks: dict[str, Telemetry] = {}


def _create_memory_cache(config: CacheConfig) -> CacheAdapter:
    """Internal helper to construct a memory cache backend."""
    return MemoryCacheBackend(
        max_size=config.max_size,
        **_common_kwargs(config),
    )


def _create_none_cache(config: CacheConfig) -> CacheAdapter:
    return NoneCacheBackend(**_common_kwargs(config))


def _common_kwargs(config: CacheConfig) -> dict:
    return {
        "namespace": config.namespace,
        "default_ttl": config.ttl_seconds,
        "key_prefix": config.key_prefix,
        "tag_prefix": config.tag_prefix,
        "hash_prefix": config.hash_prefix,
        "enable_compression": config.enable_compression,
        "compression_threshold": config.compression_threshold,
        "max_key_length": config.max_key_length,
        "max_value_size": config.max_value_size,
    }


def _import_failure(backend: str, package: str, error: Exception) -> DependencyError:
    logger.error(
        f"{backend.capitalize()} backend selected but its client is not installed",
        extra={"package": package, "error": str(error), "backend": backend},
    )
    return DependencyError(
        package,
        feature=f"the {backend} cache backend",
        install_hint=f"pip install '{package}'",
        details={"error": str(error), "backend": backend},
    )


def _create_redis_cache(config: CacheConfig) -> CacheAdapter:
    """Internal helper to construct a redis cache backend with lazy import."""
    # Validate minimal requirements (Pydantic validator also enforces this)
    if not config.redis_url:
        raise ConfigurationError(
            "REDIS_URL must be set when CACHE_BACKEND=redis",
            details={"env": "REDIS_URL", "backend": "redis"},
        )

    # Lazy import to avoid hard dependency when memory backend is used
    try:
        from .backends.redis import RedisCacheBackend
    except ImportError as e:
        raise _import_failure("redis", "redis>=5.0.0", e) from e

    return RedisCacheBackend(
        redis_url=config.redis_url,
        max_connections=config.redis_max_connections,
        socket_timeout=config.redis_socket_timeout,
        **_common_kwargs(config),
    )


def _create_memcached_cache(config: CacheConfig) -> CacheAdapter:
    """Internal helper to construct a memcached cache backend with lazy import."""
    try:
        from .backends.memcached import MemcachedCacheBackend
    except ImportError as e:
        raise _import_failure("memcached", "pymemcache>=4.0.0", e) from e

    return MemcachedCacheBackend(
        servers=config.memcached_servers,
        namespace=config.namespace,
        default_ttl=config.ttl_seconds,
        key_prefix=config.key_prefix,
        hash_prefix=config.hash_prefix,
        enable_compression=config.enable_compression,
        compression_threshold=config.compression_threshold,
        max_key_length=config.max_key_length,
        max_value_size=config.max_value_size,
    )


_BUILDERS = {
    CacheBackend.MEMORY.value: _create_memory_cache,
    CacheBackend.REDIS.value: _create_redis_cache,
    CacheBackend.MEMCACHED.value: _create_memcached_cache,
    CacheBackend.NONE.value: _create_none_cache,
}


def _backend_name(backend: CacheBackend | str) -> str:
    return backend.value if isinstance(backend, CacheBackend) else str(backend)


def create_cache(
    config: CacheConfig | None = None,
    name: str = "default",
) -> CacheAdapter:
    """
    Create a cache adapter based on configuration.

    Args:
        config: Cache configuration (uses global config if not provided)
        name: Cache instance name (for multiple cache instances)

    Returns:
        Configured cache adapter; an existing instance with the same name is reused

    Raises:
        ConfigurationError: If cache configuration is invalid or backend unavailable
    """
    # Return existing instance if already created
    if name in _cache_instances:
        logger.debug(f"Returning existing cache instance: {name}")
        return _cache_instances[name]

    # Use global config if not provided
    if config is None:
        config = get_config().cache

    backend = _backend_name(config.backend)
    logger.info(
        f"Creating cache instance '{name}' with backend: {backend}",
        extra={"cache_name": name, "backend": backend},
    )

    builder = _BUILDERS.get(backend)
    if builder is None:
        raise ConfigurationError(
            f"Unknown cache backend: {backend}",
            details={"backend": backend, "supported": sorted(_BUILDERS)},
        )

    try:
        cache = builder(config)
    except ConfigurationError:
        # Re-raise configuration and dependency errors as-is (already logged)
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error creating cache instance '{name}': {e}",
            extra={"cache_name": name, "backend": backend, "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to create cache instance '{name}': {e}",
            details={"cache_name": name, "backend": backend, "error": str(e)},
        ) from e

    # Store instance in registry
    _cache_instances[name] = cache

    logger.info(
        f"Cache instance '{name}' created successfully",
        extra={"cache_name": name, "backend": backend},
    )
    return cache


def get_cache(name: str = "default") -> CacheAdapter:
    """
    Get an existing cache instance by name.

    If the instance doesn't exist, it will be created automatically
    using the global configuration.
    """
    if name not in _cache_instances:
        logger.debug(f"Cache instance '{name}' not found, creating new instance")
        return create_cache(name=name)

    return _cache_instances[name]


def create_telemetry(config: TelemetryConfig | None = None) -> Telemetry:
    """
    Get the telemetry sink selected by configuration.

    The sink is created once per backend and shared by every manager.
    """
    if config is None:
        config = get_config().telemetry

    backend = config.backend.value if isinstance(config.backend, TelemetryBackend) else str(config.backend)
    if backend in _telemetry_sinks:
        return _telemetry_sinks[backend]

    if backend == TelemetryBackend.PROMETHEUS.value:
        sink: Telemetry = PrometheusTelemetry()
    elif backend == TelemetryBackend.SQLITE.value:
        sink = SQLiteTelemetry(metrics_db_path=config.metrics_db_path)
    elif backend == TelemetryBackend.NONE.value:
        sink = NoOpTelemetry()
    else:
        raise ConfigurationError(
            f"Unknown telemetry backend: {backend}",
            details={"backend": backend, "supported": [b.value for b in TelemetryBackend]},
        )

    _telemetry_sinks[backend] = sink
    return sink


def create_manager(
    config: CacheConfig | None = None,
    name: str = "default",
    manager_config: ManagerConfig | None = None,
    telemetry: Telemetry | None = None,
) -> CacheManager:
    """
    Create a cache manager over the named adapter.

    Enhanced adapters get an ``EnhancedCacheManager``; basic ones a ``CacheManager``.

    Args:
        config: Backend configuration (global config if not provided)
        name: Cache instance name
        manager_config: Manager configuration (global config if not provided)
        telemetry: Telemetry sink (configured sink if not provided)
    """
    adapter = create_cache(config, name=name)
    if manager_config is None:
        manager_config = get_config().manager
    if telemetry is None:
        telemetry_config = get_config().telemetry
        telemetry = create_telemetry(telemetry_config)
        buckets = telemetry_config.histogram_buckets
    else:
        buckets = None

    manager_cls = EnhancedCacheManager if adapter.capability == CacheCapability.ENHANCED else CacheManager
    return manager_cls(adapter, manager_config, telemetry, buckets)


async def close_all_caches() -> None:
    """
    Close all cache instances and release resources.

    Must be called during graceful shutdown so connections are released.
    """
    if _cache_instances:
        logger.info(f"Closing {len(_cache_instances)} cache instance(s)...")

    for name, cache in list(_cache_instances.items()):
        try:
            await cache.close()
            logger.info(f"Closed cache instance: {name}")
        except Exception as e:
            logger.error(
                f"Error closing cache instance '{name}': {e}",
                extra={"cache_name": name, "error": str(e)},
                exc_info=True,
            )
    _cache_instances.clear()

    for sink in list(_telemetry_sinks.values()):
        if isinstance(sink, SQLiteTelemetry):
            await sink.close()
    _telemetry_sinks.clear()


def reset_cache_factory() -> None:
    """
    Reset the cache factory by clearing all instance references.

    Does NOT call close() on instances - use close_all_caches() for proper cleanup.

    Warning: Only use this in testing contexts.
    """
    count = len(_cache_instances)
    _cache_instances.clear()
    _telemetry_sinks.clear()
    logger.debug(f"Reset cache factory, cleared {count} instance reference(s)")


def list_cache_instances() -> list[str]:
    """List all registered cache instance names."""
    return list(_cache_instances.keys())
