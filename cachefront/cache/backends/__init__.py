"""
cachefront - Cache Backends

Exports the backends that need no third-party client.

Redis and Memcached backends are lazy-loaded via factory.py so their clients
are only imported when selected.
"""

from .memory import MemoryCacheBackend
from .none import NoneCacheBackend

__all__ = [
    "MemoryCacheBackend",
    "NoneCacheBackend",
]
