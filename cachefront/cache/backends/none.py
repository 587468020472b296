"""
cachefront - No-op Cache Backend

Stores nothing: every read misses, every write reports False and deletes
remove nothing. Useful to disable caching without touching call sites.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..codec import CacheEntry
from ..interface import CacheOptions, EnhancedCacheAdapter
from ..pipeline import PipelineOp

logger = logging.getLogger(__name__)


class NoneCacheBackend(EnhancedCacheAdapter):
    """Cache backend that caches nothing."""

    name = "none"

    async def get(self, key: str, hash: str = "", options: CacheOptions | None = None) -> Any | None:
        return None

    async def get_entry(self, key: str, hash: str = "", options: CacheOptions | None = None) -> CacheEntry | None:
        return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        hash: str = "",
        options: CacheOptions | None = None,
    ) -> bool:
        return False

    async def mget(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> list[Any | None]:
        return [None] * len(keys)

    async def mset(
        self,
        entries: dict[str, Any],
        hash: str = "",
        ttl: int | None = None,
        options: CacheOptions | None = None,
    ) -> bool:
        return False

    async def delete(self, key: str, hash: str = "", options: CacheOptions | None = None) -> bool:
        return False

    async def delete_many(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> bool:
        return False

    async def keys(self, pattern: str = "*", hash: str = "", options: CacheOptions | None = None) -> list[str]:
        return []

    async def clear(self, hash: str = "") -> bool:
        return True

    async def is_alive(self) -> bool:
        return True

    async def size(self) -> int:
        return 0

    async def hash_fields(self, key: str, options: CacheOptions | None = None) -> list[str]:
        return []

    async def extend_ttl(self, key: str, ttl: int, hash: str = "", options: CacheOptions | None = None) -> bool:
        return False

    async def close(self) -> None:
        logger.debug("No-op cache backend closed")

    async def mdel(self, keys: Sequence[str], options: CacheOptions | None = None) -> int:
        return 0

    async def exists(self, key: str, options: CacheOptions | None = None) -> bool:
        return False

    async def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> bool:
        return False

    async def ttl(self, key: str, options: CacheOptions | None = None) -> int:
        return -2

    async def increment(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        # Nothing is stored, so every counter starts from zero
        return amount

    async def decrement(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        return -amount

    async def flush_namespace(self, namespace: str | None = None) -> int:
        return 0

    async def flush_by_tags(self, tags: Sequence[str]) -> int:
        return 0

    async def get_stats(self) -> dict[str, Any]:
        return {"backend": self.name, "size": 0, "namespace": self._namespace}

    async def get_keys_by_namespace(self, namespace: str | None = None, pattern: str = "*") -> list[str]:
        return []

    async def get_keys_by_tags(self, tags: Sequence[str]) -> list[str]:
        return []

    async def transaction(self, operations: Sequence[PipelineOp]) -> list[Any]:
        return [False if op.command != "get" else None for op in operations]
