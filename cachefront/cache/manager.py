"""
cachefront - Cache Manager

The public façade over one adapter. Every call goes through the same path:

1. Keys are normalized (case folding, length check)
2. Values are validated before anything is written
3. The adapter call is retried on transient failures
4. Stats, events and the duration histogram are updated

``CacheManager`` works with any adapter. ``EnhancedCacheManager`` requires an
enhanced adapter and adds namespaces, tags, counters, TTL control, pipelines
and transactions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Literal

from ..config.schemas import DEFAULT_HISTOGRAM_BUCKETS, ManagerConfig
from ..errors import CapabilityError, ValidationError, extract_error_code
from ..observability.telemetry import Histogram, NoOpTelemetry, Telemetry
from ..resilience.retry import RetryPolicy, proportional_jitter, with_retry
from .codec import validate_value
from .interface import CacheAdapter, CacheCapability, CacheOptions, CacheStats, EnhancedCacheAdapter
from .keys import KeyNormalizer
from .pipeline import CachePipeline, PipelineOp

logger = logging.getLogger(__name__)

CacheEvent = Literal["hit", "miss", "set", "delete", "clear", "error"]
EVENTS: frozenset[str] = frozenset({"hit", "miss", "set", "delete", "clear", "error"})

Listener = Callable[..., Any]

DURATION_METRIC = "cache.operation.duration"


class CacheManager:
    """
    Cache manager over a basic adapter.

    Listeners receive:
        hit(key), miss(key), set(key, value), delete(key), clear(), error(exc)

    Example:
        manager = CacheManager(MemoryCacheBackend())
        await manager.set("user:1", {"name": "Ada"}, ttl=60)
        user = await manager.get("user:1")
    """

    def __init__(
        self,
        adapter: CacheAdapter,
        config: ManagerConfig | None = None,
        telemetry: Telemetry | None = None,
        buckets: Sequence[float] | None = None,
    ):
        self.adapter = adapter
        self.config = config or ManagerConfig()
        self.retry_policy = RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_delay,
            max_delay=self.config.retry_max_delay,
            jitter=proportional_jitter(self.config.retry_jitter),
        )

        self._normalizer = KeyNormalizer(
            case_sensitive=self.config.case_sensitive,
            max_key_length=self.config.max_key_length,
        )
        self._stats = CacheStats()
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._listener_tasks: set[asyncio.Future[Any]] = set()
        self._duration: Histogram = NoOpTelemetry().create_histogram(DURATION_METRIC, "s")
        self.set_telemetry(telemetry or NoOpTelemetry(), buckets)

        logger.info(
            f"Cache manager initialized over '{adapter.get_name()}' adapter",
            extra={
                "adapter": adapter.get_name(),
                "max_retries": self.config.max_retries,
                "case_sensitive": self.config.case_sensitive,
            },
        )

    # ------------ Configuration ------------

    def set_telemetry(self, telemetry: Telemetry, buckets: Sequence[float] | None = None) -> None:
        """Route operation durations to a new telemetry sink."""
        self._duration = telemetry.create_histogram(
            DURATION_METRIC,
            "s",
            "Duration of cache operations",
            list(buckets) if buckets is not None else list(DEFAULT_HISTOGRAM_BUCKETS),
        )

    def set_case_sensitivity(self, case_sensitive: bool) -> None:
        """
        Switch key case folding. Affects later calls only.

        Keys written under the previous policy keep their stored form.
        """
        self._normalizer.case_sensitive = case_sensitive

    @property
    def case_sensitive(self) -> bool:
        return self._normalizer.case_sensitive

    # ------------ Events ------------

    def on(self, event: CacheEvent, listener: Listener) -> None:
        """Register a listener (sync function or coroutine function)."""
        if event not in EVENTS:
            raise ValueError(f"Unknown cache event '{event}'. Valid events: {sorted(EVENTS)}")
        self._listeners[event].append(listener)

    def off(self, event: CacheEvent, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                logger.warning(f"Cache '{event}' listener failed: {e}", extra={"event": event, "error": str(e)})

    def _listener_done(self, task: asyncio.Future[Any]) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Async cache listener failed: {error}", extra={"error": str(error)})

    # ------------ Instrumentation ------------

    @contextmanager
    def _instrument(self, operation: str, key: str | None = None) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            self._stats.errors += 1
            level = logging.WARNING if isinstance(e, ValidationError) else logging.ERROR
            logger.log(
                level,
                f"Cache {operation} failed: {e}",
                extra={
                    "operation": operation,
                    "key": key,
                    "adapter": self.adapter.get_name(),
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "error_code": extract_error_code(e).value,
                },
            )
            self._emit("error", e)
            raise
        finally:
            self._record_duration(operation, time.perf_counter() - start)

    def _record_duration(self, operation: str, duration: float) -> None:
        if duration < self.config.telemetry_threshold:
            return
        try:
            self._duration.record(duration, {"operation": operation, "adapter": self.adapter.get_name()})
        except Exception as e:
            logger.warning(f"Failed to record cache telemetry: {e}", extra={"operation": operation})

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await with_retry(func, *args, policy=self.retry_policy, operation=operation, **kwargs)

    # ------------ Helpers ------------

    def _key(self, key: str) -> str:
        if isinstance(key, str) and not key:
            raise ValidationError("Cache key must not be empty")
        return self._normalizer.normalize(key)

    def _hash(self, hash: str) -> str:
        if not hash:
            return ""
        return self._normalizer.normalize(hash)

    def _resolve_ttl(self, ttl: int | None, options: CacheOptions | None = None) -> int:
        if ttl is not None:
            return ttl
        if options is not None and options.ttl is not None:
            return options.ttl
        return self.config.default_ttl

    def _adapter_kwargs(self, options: CacheOptions | None) -> dict[str, Any]:
        return {}

    def _lookup(self, key: str, value: Any) -> None:
        if value is None:
            self._stats.misses += 1
            self._emit("miss", key)
        else:
            self._stats.hits += 1
            self._emit("hit", key)

    # ------------ Shared implementations ------------

    async def _get(self, key: str, hash: str, options: CacheOptions | None) -> Any | None:
        with self._instrument("get", key):
            normalized = self._key(key)
            value = await self._call("get", self.adapter.get, normalized, self._hash(hash), **self._adapter_kwargs(options))
        self._lookup(normalized, value)
        return value

    async def _set(self, key: str, value: Any, ttl: int | None, hash: str, options: CacheOptions | None) -> bool:
        with self._instrument("set", key):
            normalized = self._key(key)
            validate_value(value, self.config.max_value_size)
            stored = await self._call(
                "set",
                self.adapter.set,
                normalized,
                value,
                self._resolve_ttl(ttl, options),
                self._hash(hash),
                **self._adapter_kwargs(options),
            )
        if stored:
            self._stats.sets += 1
            self._emit("set", normalized, value)
        return bool(stored)

    async def _mget(self, keys: Sequence[str], hash: str, options: CacheOptions | None) -> list[Any | None]:
        with self._instrument("mget"):
            normalized = [self._key(key) for key in keys]
            if not normalized:
                return []
            values = await self._call("mget", self.adapter.mget, normalized, self._hash(hash), **self._adapter_kwargs(options))
        for key, value in zip(normalized, values, strict=False):
            self._lookup(key, value)
        return list(values)

    async def _mset(self, entries: dict[str, Any], hash: str, ttl: int | None, options: CacheOptions | None) -> bool:
        with self._instrument("mset"):
            normalized = {self._key(key): value for key, value in entries.items()}
            # Every value is validated before the first write
            for value in normalized.values():
                validate_value(value, self.config.max_value_size)
            if not normalized:
                return True
            stored = await self._call(
                "mset",
                self.adapter.mset,
                normalized,
                self._hash(hash),
                self._resolve_ttl(ttl, options),
                **self._adapter_kwargs(options),
            )
        if stored:
            self._stats.sets += len(normalized)
            for key, value in normalized.items():
                self._emit("set", key, value)
        return bool(stored)

    async def _delete(self, key: str, hash: str, options: CacheOptions | None) -> bool:
        with self._instrument("delete", key):
            normalized = self._key(key)
            removed = await self._call("delete", self.adapter.delete, normalized, self._hash(hash), **self._adapter_kwargs(options))
        if removed:
            self._stats.deletes += 1
            self._emit("delete", normalized)
        return bool(removed)

    async def _delete_many(self, keys: Sequence[str], hash: str, options: CacheOptions | None) -> bool:
        with self._instrument("delete_many"):
            normalized = [self._key(key) for key in keys]
            if not normalized:
                return False
            removed = await self._call(
                "delete_many",
                self.adapter.delete_keys,
                normalized,
                self._hash(hash),
                **self._adapter_kwargs(options),
            )
        self._stats.deletes += len(removed)
        for key in removed:
            self._emit("delete", key)
        return bool(removed)

    async def _keys(self, pattern: str, hash: str, options: CacheOptions | None) -> list[str]:
        with self._instrument("keys"):
            normalized = self._normalizer.normalize(pattern)
            return await self._call("keys", self.adapter.keys, normalized, self._hash(hash), **self._adapter_kwargs(options))

    async def _extend_ttl(self, key: str, ttl: int, hash: str, options: CacheOptions | None) -> bool:
        with self._instrument("extend_ttl", key):
            normalized = self._key(key)
            kwargs = self._adapter_kwargs(options)
            try:
                return bool(await self._call("extend_ttl", self.adapter.extend_ttl, normalized, ttl, self._hash(hash), **kwargs))
            except NotImplementedError:
                pass

            # Adapter has no native TTL rewrite: read the value and write it back
            value = await self._call("get", self.adapter.get, normalized, self._hash(hash), **kwargs)
            if value is None:
                return False
            return bool(await self._call("set", self.adapter.set, normalized, value, ttl, self._hash(hash), **kwargs))

    # ------------ Public API ------------

    async def get(self, key: str, hash: str = "") -> Any | None:
        """
        Get a value.

        Args:
            key: Cache key
            hash: Field of a legacy hash record (optional)

        Returns:
            Cached value, or None on miss
        """
        return await self._get(key, hash, None)

    async def set(self, key: str, value: Any, ttl: int | None = None, hash: str = "") -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value (None is rejected)
            ttl: Seconds to live (None = configured default, 0 = no expiry)
            hash: Field of a legacy hash record (optional)

        Returns:
            True if the value was stored

        Raises:
            ValidationError: Empty key, unserializable or oversized value
        """
        return await self._set(key, value, ttl, hash, None)

    async def mget(self, keys: Sequence[str], hash: str = "") -> list[Any | None]:
        """Get several values; missing keys yield None in their position."""
        return await self._mget(keys, hash, None)

    async def mset(self, entries: dict[str, Any], hash: str = "", ttl: int | None = None) -> bool:
        """Store several values. Nothing is written if any value fails validation."""
        return await self._mset(entries, hash, ttl, None)

    async def delete(self, key: str, hash: str = "") -> bool:
        """Delete a key. Returns False when nothing was removed."""
        return await self._delete(key, hash, None)

    async def delete_many(self, keys: Sequence[str], hash: str = "") -> bool:
        """Delete several keys. Returns True if any key was removed."""
        return await self._delete_many(keys, hash, None)

    async def keys(self, pattern: str = "*", hash: str = "") -> list[str]:
        """List logical keys matching a glob pattern."""
        return await self._keys(pattern, hash, None)

    async def extend_ttl(self, key: str, ttl: int, hash: str = "") -> bool:
        """Reset the time-to-live of an existing key."""
        return await self._extend_ttl(key, ttl, hash, None)

    async def clear(self) -> bool:
        """Remove every entry the adapter owns."""
        with self._instrument("clear"):
            cleared = await self._call("clear", self.adapter.clear)
        if cleared:
            self._emit("clear")
        return bool(cleared)

    async def size(self) -> int:
        """Number of live keys."""
        with self._instrument("size"):
            return int(await self._call("size", self.adapter.size))

    async def ping(self) -> bool:
        """Check that the backend responds."""
        with self._instrument("ping"):
            return bool(await self._call("ping", self.adapter.is_alive))

    async def get_stats(self) -> CacheStats:
        """
        Snapshot of the cumulative counters.

        ``key_count`` is read live from the adapter (0 when it cannot be read).
        """
        stats = replace(self._stats)
        stats.key_count = await self.get_size()
        return stats

    def reset_stats(self) -> None:
        self._stats = CacheStats()

    async def close(self) -> None:
        """Close the adapter and wait for pending async listeners."""
        if self._listener_tasks:
            await asyncio.gather(*self._listener_tasks, return_exceptions=True)
        await self.adapter.close()

    # ------------ Legacy API ------------
    # Sentinel results instead of exceptions: False, [] or 0 on failure.

    async def load(self, key: str, ttl: int, hash: str = "") -> Any:
        """
        Load a value, honoring ``ttl`` against the creation time for hash fields.

        Returns:
            The value, or False on miss, expiry or failure
        """
        try:
            with self._instrument("load", key):
                normalized = self._key(key)
                value = await self._call("load", self.adapter.load, normalized, ttl, self._hash(hash))
        except Exception:
            return False
        self._lookup(normalized, None if value is False else value)
        return value

    async def save(self, key: str, data: Any, hash: str = "") -> bool:
        """
        Save a value without expiry (hash fields carry their creation time).

        Raises:
            ValidationError: Invalid key or value; other failures return False
        """
        try:
            with self._instrument("save", key):
                normalized = self._key(key)
                validate_value(data, self.config.max_value_size)
                stored = await self._call("save", self.adapter.save, normalized, data, self._hash(hash))
        except ValidationError:
            raise
        except Exception:
            return False
        if stored:
            self._stats.sets += 1
            self._emit("set", normalized, data)
        return bool(stored)

    async def list(self, key: str) -> list[str]:
        """List the fields of a legacy hash record ([] on failure)."""
        try:
            with self._instrument("list", key):
                return list(await self._call("list", self.adapter.list, self._key(key)))
        except Exception:
            return []

    async def purge(self, key: str, hash: str = "") -> bool:
        """Delete a key or hash field (False on failure)."""
        try:
            with self._instrument("purge", key):
                normalized = self._key(key)
                removed = await self._call("purge", self.adapter.purge, normalized, self._hash(hash))
        except Exception:
            return False
        if removed:
            self._stats.deletes += 1
            self._emit("delete", normalized)
        return bool(removed)

    async def flush(self) -> bool:
        """Clear the cache (False on failure)."""
        try:
            with self._instrument("flush"):
                cleared = await self._call("flush", self.adapter.flush)
        except Exception:
            return False
        if cleared:
            self._emit("clear")
        return bool(cleared)

    async def get_size(self) -> int:
        """Number of live keys (0 on failure)."""
        try:
            with self._instrument("get_size"):
                return int(await self._call("get_size", self.adapter.get_size))
        except Exception:
            return 0


class EnhancedCacheManager(CacheManager):
    """
    Cache manager over an enhanced adapter.

    Per-call ``options`` carry TTL, namespace, tags, compression and metadata;
    calls without a namespace use the manager's default namespace.

    Example:
        manager = EnhancedCacheManager(RedisCacheBackend(redis_url=url))
        await manager.set("user:1", user, options=CacheOptions(tags=["users"]))
        await manager.flush_by_tags(["users"])
    """

    adapter: EnhancedCacheAdapter

    def __init__(
        self,
        adapter: EnhancedCacheAdapter,
        config: ManagerConfig | None = None,
        telemetry: Telemetry | None = None,
        buckets: Sequence[float] | None = None,
    ):
        if adapter.capability != CacheCapability.ENHANCED or not isinstance(adapter, EnhancedCacheAdapter):
            raise CapabilityError(adapter.get_name(), CacheCapability.ENHANCED.value)

        super().__init__(adapter, config, telemetry, buckets)
        if self.config.default_namespace:
            adapter.set_namespace(self.config.default_namespace)
        self._default_namespace = adapter.get_namespace()

    # ------------ Namespaces ------------

    def set_default_namespace(self, namespace: str) -> None:
        """
        Change the namespace used when a call does not name one.

        Raises:
            InvalidNamespaceError: Empty namespace or one containing ":"
        """
        self.adapter.set_namespace(namespace)
        self._default_namespace = self.adapter.get_namespace()

    def get_default_namespace(self) -> str:
        return self._default_namespace

    # ------------ Helpers ------------

    def _resolve_options(self, options: CacheOptions | None) -> CacheOptions:
        options = options or CacheOptions()
        return replace(
            options,
            namespace=options.namespace or self._default_namespace,
            tags=self._normalizer.normalize_tags(options.tags),
        )

    def _adapter_kwargs(self, options: CacheOptions | None) -> dict[str, Any]:
        return {"options": self._resolve_options(options)}

    def _counter_options(self, options: CacheOptions | None) -> CacheOptions:
        resolved = self._resolve_options(options)
        return replace(resolved, ttl=self._resolve_ttl(None, resolved))

    # ------------ Basic operations with options ------------

    async def get(self, key: str, hash: str = "", *, options: CacheOptions | None = None) -> Any | None:
        """
        Get a value.

        With ``options.include_metadata`` the full CacheEntry is returned.
        """
        return await self._get(key, hash, options)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        hash: str = "",
        *,
        options: CacheOptions | None = None,
    ) -> bool:
        """Store a value; ``ttl`` wins over ``options.ttl``, which wins over the default."""
        return await self._set(key, value, ttl, hash, options)

    async def mget(self, keys: Sequence[str], hash: str = "", *, options: CacheOptions | None = None) -> list[Any | None]:
        return await self._mget(keys, hash, options)

    async def mset(
        self,
        entries: dict[str, Any],
        hash: str = "",
        ttl: int | None = None,
        *,
        options: CacheOptions | None = None,
    ) -> bool:
        return await self._mset(entries, hash, ttl, options)

    async def delete(self, key: str, hash: str = "", *, options: CacheOptions | None = None) -> bool:
        return await self._delete(key, hash, options)

    async def delete_many(self, keys: Sequence[str], hash: str = "", *, options: CacheOptions | None = None) -> bool:
        return await self._delete_many(keys, hash, options)

    async def keys(self, pattern: str = "*", hash: str = "", *, options: CacheOptions | None = None) -> list[str]:
        return await self._keys(pattern, hash, options)

    async def extend_ttl(self, key: str, ttl: int, hash: str = "", *, options: CacheOptions | None = None) -> bool:
        return await self._extend_ttl(key, ttl, hash, options)

    # ------------ Enhanced operations ------------

    async def mdel(self, keys: Sequence[str], options: CacheOptions | None = None) -> int:
        """Delete several keys and return how many existed."""
        with self._instrument("mdel"):
            normalized = [self._key(key) for key in keys]
            if not normalized:
                return 0
            removed = await self._call("mdel", self.adapter.delete_keys, normalized, options=self._resolve_options(options))
        self._stats.deletes += len(removed)
        for key in removed:
            self._emit("delete", key)
        return len(removed)

    async def exists(self, key: str, options: CacheOptions | None = None) -> bool:
        with self._instrument("exists", key):
            return bool(
                await self._call("exists", self.adapter.exists, self._key(key), options=self._resolve_options(options))
            )

    async def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> bool:
        """
        Set the time-to-live of an existing key.

        Args:
            ttl: Seconds to live; 0 or less removes the expiry

        Returns:
            False if the key does not exist
        """
        with self._instrument("expire", key):
            return bool(
                await self._call(
                    "expire",
                    self.adapter.expire,
                    self._key(key),
                    ttl,
                    options=self._resolve_options(options),
                )
            )

    async def ttl(self, key: str, options: CacheOptions | None = None) -> int:
        """Remaining seconds to live; -1 without expiry, -2 when missing."""
        with self._instrument("ttl", key):
            return int(await self._call("ttl", self.adapter.ttl, self._key(key), options=self._resolve_options(options)))

    async def increment(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        """
        Add ``amount`` to an integer counter, creating it at 0 when missing.

        A counter created here gets ``options.ttl`` or the configured default TTL.
        """
        with self._instrument("increment", key):
            return int(
                await self._call(
                    "increment",
                    self.adapter.increment,
                    self._key(key),
                    amount,
                    options=self._counter_options(options),
                )
            )

    async def decrement(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        with self._instrument("decrement", key):
            return int(
                await self._call(
                    "decrement",
                    self.adapter.decrement,
                    self._key(key),
                    amount,
                    options=self._counter_options(options),
                )
            )

    async def flush_namespace(self, namespace: str | None = None) -> int:
        """Delete every key in a namespace (default namespace when None)."""
        with self._instrument("flush_namespace"):
            removed = await self._call(
                "flush_namespace",
                self.adapter.flush_namespace,
                namespace or self._default_namespace,
            )
        self._stats.deletes += removed
        return int(removed)

    async def flush_by_tags(self, tags: Sequence[str]) -> int:
        """Delete every key indexed under any of ``tags``."""
        with self._instrument("flush_by_tags"):
            normalized = self._normalizer.normalize_tags(tags)
            if not normalized:
                return 0
            removed = await self._call("flush_by_tags", self.adapter.flush_by_tags, normalized)
        self._stats.deletes += removed
        return int(removed)

    async def get_keys_by_namespace(self, namespace: str | None = None, pattern: str = "*") -> list[str]:
        with self._instrument("get_keys_by_namespace"):
            return await self._call(
                "get_keys_by_namespace",
                self.adapter.get_keys_by_namespace,
                namespace or self._default_namespace,
                self._normalizer.normalize(pattern),
            )

    async def get_keys_by_tags(self, tags: Sequence[str]) -> list[str]:
        with self._instrument("get_keys_by_tags"):
            normalized = self._normalizer.normalize_tags(tags)
            if not normalized:
                return []
            return await self._call("get_keys_by_tags", self.adapter.get_keys_by_tags, normalized)

    async def get_backend_stats(self) -> dict[str, Any]:
        """Adapter-specific statistics (memory usage, evictions, server info)."""
        with self._instrument("get_backend_stats"):
            return await self._call("get_backend_stats", self.adapter.get_stats)

    # ------------ Batches ------------

    def pipeline(self) -> CachePipeline:
        """
        Start a pipeline; queued keys are normalized as they are added.

        Pipelines run in the adapter's namespace, which tracks the default namespace.
        """
        return self.adapter.pipeline(key_transform=self._key)

    async def transaction(self, operations: Sequence[PipelineOp]) -> list[Any]:
        """
        Run operations as one unit (not retried).

        Returns:
            One result per operation in submission order
        """
        with self._instrument("transaction"):
            prepared = [self._prepare_op(op) for op in operations]
            if not prepared:
                return []
            results = await self.adapter.transaction(prepared)

        for op, result in zip(prepared, results, strict=False):
            if op.command == "get":
                self._lookup(op.key, result)
            elif op.command == "set" and result is True:
                self._stats.sets += 1
                self._emit("set", op.key, op.value)
            elif op.command == "delete" and result is True:
                self._stats.deletes += 1
                self._emit("delete", op.key)
        return results

    def _prepare_op(self, op: PipelineOp) -> PipelineOp:
        options = self._resolve_options(op.options)
        if op.command == "set":
            validate_value(op.value, self.config.max_value_size)
            return replace(op, key=self._key(op.key), ttl=self._resolve_ttl(op.ttl, options), options=options)
        return replace(op, key=self._key(op.key), options=options)
