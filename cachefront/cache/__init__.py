"""
cachefront - Cache Module

Caching façade with pluggable backends.

- factory.py: creation of adapters and managers from configuration
- interface.py: adapter contracts (basic and enhanced) and per-call options
- manager.py: the façade (normalization, validation, retries, stats, events, telemetry)
- pipeline.py: batched operations
- backends/: memory, redis, memcached and none adapters

Usage:
    from cachefront.cache import create_manager

    cache = create_manager()
    await cache.set("key", "value", ttl=3600)
    value = await cache.get("key")
"""

from .codec import CacheEntry, ValueCodec
from .factory import (
    close_all_caches,
    create_cache,
    create_manager,
    create_telemetry,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
)
from .interface import CacheAdapter, CacheCapability, CacheOptions, CacheStats, EnhancedCacheAdapter
from .keys import KeyNormalizer
from .manager import CacheManager, EnhancedCacheManager
from .pipeline import CachePipeline, PipelineOp

__all__ = [
    # Factory functions
    "create_cache",
    "create_manager",
    "create_telemetry",
    "get_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    # Managers
    "CacheManager",
    "EnhancedCacheManager",
    # Interface
    "CacheAdapter",
    "EnhancedCacheAdapter",
    "CacheCapability",
    "CacheOptions",
    "CacheStats",
    # Building blocks
    "CacheEntry",
    "ValueCodec",
    "KeyNormalizer",
    "CachePipeline",
    "PipelineOp",
]
