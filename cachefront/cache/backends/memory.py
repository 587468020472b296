"""
cachefront - Memory Cache Backend

In-memory enhanced cache with LRU eviction and TTL support.
Suitable for single-process deployments and tests.

Stored payloads are the same encoded envelopes the network backends store, so
values never alias the caller's objects.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import OrderedDict
from collections.abc import Sequence
from typing import Any

from ...errors import CacheOperationError
from ..codec import CacheEntry
from ..interface import CacheOptions, EnhancedCacheAdapter
from ..pipeline import PipelineOp

logger = logging.getLogger(__name__)


class MemoryCacheBackend(EnhancedCacheAdapter):
    """
    In-memory cache backend with LRU eviction.

    Features:
    - LRU eviction of value keys when max_size is reached
    - Per-key TTL support (native expiry plus envelope expiry)
    - Tag indices kept exact: rewritten, deleted, expired and evicted keys leave them
    - Transactions roll back on failure
    """

    name = "memory"

    def __init__(self, max_size: int = 1000, **kwargs: Any):
        """
        Initialize memory cache backend.

        Args:
            max_size: Maximum number of value keys (LRU eviction when exceeded)
            **kwargs: EnhancedCacheAdapter settings (namespace, default_ttl, prefixes, ...)
        """
        super().__init__(**kwargs)
        self.max_size = max_size

        # physical key -> (payload, native expiry time)
        self._cache: OrderedDict[str, tuple[str, float | None]] = OrderedDict()
        # tag key -> physical keys
        self._tags: dict[str, set[str]] = {}
        # hash record key -> hash -> payload
        self._hashes: dict[str, dict[str, str]] = {}

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

        self._lock = asyncio.Lock()

    # ------------ Storage helpers (call with the lock held) ------------

    @staticmethod
    def _is_expired(expiry: float | None) -> bool:
        """Check if a native expiry has passed."""
        if expiry is None:
            return False
        return time.time() > expiry

    def _read(self, physical: str, touch: bool = True) -> CacheEntry | None:
        item = self._cache.get(physical)
        if item is None:
            return None

        payload, expiry = item
        entry = self.codec.decode(payload)
        if entry is None or self._is_expired(expiry) or entry.is_expired():
            self._remove(physical)
            return None

        if touch:
            self._cache.move_to_end(physical)
        return entry

    def _untag(self, physical: str, tags: list[str]) -> None:
        for tag in tags:
            tag_key = self._make_tag_key(tag)
            members = self._tags.get(tag_key)
            if members is None:
                continue
            members.discard(physical)
            if not members:
                del self._tags[tag_key]

    def _remove(self, physical: str) -> bool:
        item = self._cache.pop(physical, None)
        if item is None:
            return False

        entry = self.codec.decode(item[0])
        if entry is not None and entry.tags:
            self._untag(physical, entry.tags)
        return True

    def _store(self, physical: str, payload: str, ttl: int | None, tags: list[str]) -> None:
        previous = self._cache.get(physical)
        if previous is not None:
            old = self.codec.decode(previous[0])
            if old is not None:
                self._untag(physical, [tag for tag in old.tags if tag not in tags])
        elif len(self._cache) >= self.max_size:
            # Remove oldest entry (LRU)
            evicted_key = next(iter(self._cache))
            self._remove(evicted_key)
            self._evictions += 1
            logger.debug(f"Evicted key from memory cache: {evicted_key}")

        expiry = time.time() + ttl if ttl else None
        self._cache[physical] = (payload, expiry)
        self._cache.move_to_end(physical)

        for tag in tags:
            self._tags.setdefault(self._make_tag_key(tag), set()).add(physical)

    def _read_hash(self, hash_key: str, field: str) -> CacheEntry | None:
        record = self._hashes.get(hash_key)
        if record is None or field not in record:
            return None

        entry = self.codec.decode(record[field])
        if entry is None or entry.is_expired():
            self._delete_hash(hash_key, field)
            return None
        return entry

    def _delete_hash(self, hash_key: str, field: str) -> bool:
        record = self._hashes.get(hash_key)
        if record is None or record.pop(field, None) is None:
            return False
        if not record:
            del self._hashes[hash_key]
        return True

    def _get_sync(self, key: str, hash: str, options: CacheOptions | None) -> CacheEntry | None:
        namespace = self._resolve_namespace(options)
        if hash:
            entry = self._read_hash(self._make_hash_key(key, namespace), hash)
        else:
            entry = self._read(self._make_key(key, namespace))

        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def _set_sync(self, key: str, value: Any, ttl: int | None, hash: str, options: CacheOptions | None) -> bool:
        namespace = self._resolve_namespace(options)
        ttl = self._ttl_seconds(ttl, options)
        tags = self._resolve_tags(options, hash)
        payload = self._encode(value, ttl, options, tags)

        if hash:
            self._hashes.setdefault(self._make_hash_key(key, namespace), {})[hash] = payload
        else:
            self._store(self._make_key(key, namespace), payload, ttl, tags)

        self._sets += 1
        return True

    def _delete_sync(self, key: str, hash: str, options: CacheOptions | None) -> bool:
        namespace = self._resolve_namespace(options)
        if hash:
            removed = self._delete_hash(self._make_hash_key(key, namespace), hash)
        else:
            removed = self._remove(self._make_key(key, namespace))

        if removed:
            self._deletes += 1
        return removed

    def _expire_sync(self, key: str, ttl: int | None, hash: str, options: CacheOptions | None) -> bool:
        namespace = self._resolve_namespace(options)
        ttl = ttl if ttl and ttl > 0 else None

        if hash:
            hash_key = self._make_hash_key(key, namespace)
            entry = self._read_hash(hash_key, hash)
            if entry is None:
                return False
            self._hashes[hash_key][hash] = self.codec.encode_entry(entry.with_ttl(ttl))
            return True

        physical = self._make_key(key, namespace)
        entry = self._read(physical)
        if entry is None:
            return False

        payload = self.codec.encode_entry(entry.with_ttl(ttl)) if entry.is_envelope else self._cache[physical][0]
        self._cache[physical] = (payload, time.time() + ttl if ttl else None)
        return True

    def _increment_sync(self, key: str, amount: int, options: CacheOptions | None) -> int:
        physical = self._make_key(key, self._resolve_namespace(options))
        entry = self._read(physical)

        if entry is None:
            ttl = self._ttl_seconds(None, options)
            self._store(physical, self.codec.encode_raw(amount), ttl, [])
            return amount

        if entry.is_envelope or not isinstance(entry.data, int) or isinstance(entry.data, bool):
            raise CacheOperationError(
                f"Value at '{key}' is not an integer counter",
                {"key": key, "backend": self.name},
            )

        value = entry.data + amount
        # Keep the counter's existing expiry
        self._cache[physical] = (self.codec.encode_raw(value), self._cache[physical][1])
        return value

    def _namespace_keys(self, namespace: str, pattern: str = "*", prefix: str | None = None) -> list[str]:
        match = self._namespace_pattern(namespace, pattern, prefix)
        source = self._hashes if prefix == self.hash_prefix else self._cache
        return [physical for physical in list(source) if self._glob_match(physical, match)]

    def _run_op(self, op: PipelineOp) -> Any:
        if op.command == "set":
            return self._set_sync(op.key, op.value, op.ttl, "", op.options)
        if op.command == "get":
            return self._present(self._get_sync(op.key, "", op.options), op.options)
        if op.command == "delete":
            return self._delete_sync(op.key, "", op.options)
        if op.command == "expire":
            return self._expire_sync(op.key, op.ttl, "", op.options)
        raise ValueError(f"Unknown operation: {op.command}")

    # ------------ Basic contract ------------

    async def get(self, key: str, hash: str = "", options: CacheOptions | None = None) -> Any | None:
        """Retrieve value from cache."""
        async with self._lock:
            return self._present(self._get_sync(key, hash, options), options)

    async def get_entry(self, key: str, hash: str = "", options: CacheOptions | None = None) -> CacheEntry | None:
        async with self._lock:
            return self._get_sync(key, hash, options)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        hash: str = "",
        options: CacheOptions | None = None,
    ) -> bool:
        """Store value in cache."""
        async with self._lock:
            return self._set_sync(key, value, ttl, hash, options)

    async def mget(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> list[Any | None]:
        """Retrieve multiple values, one result per key."""
        async with self._lock:
            return [self._present(self._get_sync(key, hash, options), options) for key in keys]

    async def mset(
        self,
        entries: dict[str, Any],
        hash: str = "",
        ttl: int | None = None,
        options: CacheOptions | None = None,
    ) -> bool:
        """Store multiple values; every payload is encoded before any is written."""
        if not entries:
            return True

        async with self._lock:
            namespace = self._resolve_namespace(options)
            ttl = self._ttl_seconds(ttl, options)
            tags = self._resolve_tags(options, hash)
            payloads = {key: self._encode(value, ttl, options, tags) for key, value in entries.items()}

            for key, payload in payloads.items():
                if hash:
                    self._hashes.setdefault(self._make_hash_key(key, namespace), {})[hash] = payload
                else:
                    self._store(self._make_key(key, namespace), payload, ttl, tags)
                self._sets += 1

            return True

    async def delete(self, key: str, hash: str = "", options: CacheOptions | None = None) -> bool:
        """Delete key from cache."""
        async with self._lock:
            return self._delete_sync(key, hash, options)

    async def delete_many(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> bool:
        return bool(await self.delete_keys(keys, hash, options=options))

    async def delete_keys(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> list[str]:
        async with self._lock:
            return [key for key in keys if self._delete_sync(key, hash, options)]

    async def keys(self, pattern: str = "*", hash: str = "", options: CacheOptions | None = None) -> list[str]:
        async with self._lock:
            namespace = self._resolve_namespace(options)

            if not hash:
                return [
                    self._logical_key(physical, namespace)
                    for physical in self._namespace_keys(namespace, pattern)
                    if self._read(physical, touch=False) is not None
                ]

            return [
                self._logical_key(hash_key, namespace, self.hash_prefix)
                for hash_key in self._namespace_keys(namespace, pattern, self.hash_prefix)
                if self._read_hash(hash_key, hash) is not None
            ]

    async def clear(self, hash: str = "") -> bool:
        """Clear all entries, or one sub-field of every hash record."""
        async with self._lock:
            if hash:
                for hash_key in list(self._hashes):
                    self._delete_hash(hash_key, hash)
                logger.info(f"Cleared hash '{hash}' from memory cache")
                return True

            size = len(self._cache) + len(self._hashes)
            self._cache.clear()
            self._tags.clear()
            self._hashes.clear()
            logger.info(f"Cleared {size} entries from memory cache")
            return True

    async def is_alive(self) -> bool:
        return True

    async def size(self) -> int:
        async with self._lock:
            for physical in list(self._cache):
                self._read(physical, touch=False)
            return len(self._cache) + len(self._hashes)

    async def hash_fields(self, key: str, options: CacheOptions | None = None) -> list[str]:
        async with self._lock:
            hash_key = self._make_hash_key(key, self._resolve_namespace(options))
            record = self._hashes.get(hash_key, {})
            return [field for field in list(record) if self._read_hash(hash_key, field) is not None]

    async def extend_ttl(self, key: str, ttl: int, hash: str = "", options: CacheOptions | None = None) -> bool:
        async with self._lock:
            return self._expire_sync(key, ttl, hash, options)

    async def close(self) -> None:
        """Close cache and release resources."""
        # Memory backend doesn't need cleanup - data persists in-process
        logger.debug(f"Memory cache backend closed for namespace '{self._namespace}'")

    # ------------ Enhanced contract ------------

    async def mdel(self, keys: Sequence[str], options: CacheOptions | None = None) -> int:
        return len(await self.delete_keys(keys, options=options))

    async def exists(self, key: str, options: CacheOptions | None = None) -> bool:
        async with self._lock:
            physical = self._make_key(key, self._resolve_namespace(options))
            return self._read(physical, touch=False) is not None

    async def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> bool:
        async with self._lock:
            return self._expire_sync(key, ttl, "", options)

    async def ttl(self, key: str, options: CacheOptions | None = None) -> int:
        async with self._lock:
            physical = self._make_key(key, self._resolve_namespace(options))
            entry = self._read(physical, touch=False)
            if entry is None:
                return -2

            if entry.is_envelope:
                remaining = entry.remaining_ttl()
                return -1 if remaining is None else remaining

            expiry = self._cache[physical][1]
            return -1 if expiry is None else max(0, math.ceil(expiry - time.time()))

    async def increment(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        async with self._lock:
            return self._increment_sync(key, amount, options)

    async def decrement(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        async with self._lock:
            return self._increment_sync(key, -amount, options)

    async def flush_namespace(self, namespace: str | None = None) -> int:
        async with self._lock:
            namespace = self._validate_namespace(namespace) if namespace else self._namespace

            removed = sum(1 for physical in self._namespace_keys(namespace) if self._remove(physical))
            for hash_key in self._namespace_keys(namespace, prefix=self.hash_prefix):
                del self._hashes[hash_key]
                removed += 1

            self._deletes += removed
            logger.info(f"Flushed {removed} keys from namespace '{namespace}'")
            return removed

    async def flush_by_tags(self, tags: Sequence[str]) -> int:
        async with self._lock:
            tag_keys = [self._make_tag_key(tag) for tag in tags]
            members: set[str] = set()
            for tag_key in tag_keys:
                members.update(self._tags.get(tag_key, ()))

            removed = sum(1 for physical in members if self._remove(physical))
            for tag_key in tag_keys:
                self._tags.pop(tag_key, None)

            self._deletes += removed
            logger.info(f"Flushed {removed} keys tagged with {list(tags)}")
            return removed

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        async with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "backend": self.name,
                "size": len(self._cache),
                "hash_records": len(self._hashes),
                "tags": len(self._tags),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "namespace": self._namespace,
            }

    async def get_keys_by_namespace(self, namespace: str | None = None, pattern: str = "*") -> list[str]:
        async with self._lock:
            namespace = self._validate_namespace(namespace) if namespace else self._namespace
            return [
                physical
                for physical in self._namespace_keys(namespace, pattern)
                if self._read(physical, touch=False) is not None
            ]

    async def get_keys_by_tags(self, tags: Sequence[str]) -> list[str]:
        async with self._lock:
            members: set[str] = set()
            for tag in tags:
                members.update(self._tags.get(self._make_tag_key(tag), ()))
            return sorted(physical for physical in members if self._read(physical, touch=False) is not None)

    async def transaction(self, operations: Sequence[PipelineOp]) -> list[Any]:
        """Run operations atomically; on failure every change is rolled back."""
        async with self._lock:
            snapshot = (
                OrderedDict(self._cache),
                {tag_key: set(members) for tag_key, members in self._tags.items()},
                {hash_key: dict(record) for hash_key, record in self._hashes.items()},
            )
            try:
                return [self._run_op(op) for op in operations]
            except Exception:
                self._cache, self._tags, self._hashes = snapshot
                logger.warning("Memory cache transaction rolled back", exc_info=True)
                raise
