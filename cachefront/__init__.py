"""
cachefront - Caching Façade

One asynchronous cache API over memory, Redis, Memcached or no backend at all,
with key normalization, value validation, retries, stats, events and telemetry.
"""

__version__ = "1.0.0"

# Export main components for external use
from .cache import (
    CacheManager,
    CacheOptions,
    EnhancedCacheManager,
    close_all_caches,
    create_cache,
    create_manager,
)
from .config import load_config

__all__ = [
    "CacheManager",
    "CacheOptions",
    "EnhancedCacheManager",
    "close_all_caches",
    "create_cache",
    "create_manager",
    "load_config",
]
