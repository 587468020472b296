"""
cachefront - Redis Cache Backend

Asynchronous Redis enhanced cache implementation with:
- Envelope payloads (JSON, optionally gzip-compressed)
- Namespaced keys and tag indices (Redis sets) written in the value's transaction
- SCAN-based enumeration and namespace/tag flushes
- Compare-and-set TTL rewrites (WATCH/MULTI) and atomic counters
- Pipelines with per-operation error isolation

Requires: redis>=5.0 with asyncio support, Redis server >= 7.0
(SET ... GET, GETDEL and EXPIRE NX/GT).

Example:
    cache = RedisCacheBackend(redis_url="redis://localhost:6379", namespace="app", default_ttl=3600)
    await cache.set("greeting", {"msg": "hello"}, ttl=60)
    val = await cache.get("greeting")
"""

from __future__ import annotations

import asyncio
import glob
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from ...errors import CacheConnectionError, CacheOperationError, CachefrontError
from ..codec import CacheEntry
from ..interface import CacheOptions, EnhancedCacheAdapter
from ..pipeline import CachePipeline, PipelineOp

logger = logging.getLogger(__name__)

try:
    # redis-py asyncio client (v5+)
    from redis.asyncio import Redis
    from redis.exceptions import ConnectionError as RedisConnectionError
    from redis.exceptions import RedisError, WatchError
    from redis.exceptions import TimeoutError as RedisTimeoutError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis async client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e

_BATCH_SIZE = 1000

Finisher = Callable[[list[Any]], Awaitable[Any]]


class RedisCacheBackend(EnhancedCacheAdapter):
    """
    Redis cache backend.

    Notes:
    - TTL is applied via Redis EX seconds (None -> default_ttl, 0 -> no expiry)
      and repeated in the envelope, which reads re-validate.
    - Tag index sets get the longest TTL of their members (EXPIRE NX + GT) and
      are persisted when a permanent key joins them.
    - Expired envelopes seen by reads are deleted in the background, only if the
      stored payload is still the one that was read.
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str | None = None,
        max_connections: int = 10,
        socket_timeout: int = 5,
        client: Redis | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize Redis cache backend.

        Args:
            redis_url: Connection URL, e.g., redis://localhost:6379/0 or rediss:// for TLS
            max_connections: Connection pool size
            socket_timeout: Socket timeout in seconds
            client: Existing client to use instead of redis_url (must decode responses)
            **kwargs: EnhancedCacheAdapter settings (namespace, default_ttl, prefixes, ...)
        """
        if client is None and not redis_url:
            raise ValueError("redis_url is required")

        super().__init__(**kwargs)

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

        # Create Redis client (lazy connection; connects on first command)
        self._client: Redis = client or Redis.from_url(  # type: ignore[call-overload]
            url=redis_url,
            decode_responses=True,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
        )

        self._cleanup_tasks: set[asyncio.Task[None]] = set()

    # ------------ Helpers ------------

    def _translate(self, error: Exception, operation: str) -> CachefrontError:
        """Map a redis-py exception onto the cachefront error taxonomy."""
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            return CacheConnectionError(self.name, operation, {"error": str(error)})
        return CacheOperationError(
            f"Redis {operation} failed: {error}",
            {"backend": self.name, "operation": operation, "error": str(error)},
        )

    @contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except RedisError as e:
            raise self._translate(e, operation) from e

    async def _scan(self, match: str) -> list[str]:
        """SCAN all keys matching a glob pattern."""
        cursor = 0
        found: list[str] = []

        while True:
            cursor, keys = await self._client.scan(cursor=cursor, match=match, count=_BATCH_SIZE)
            found.extend(keys)
            if cursor == 0:
                break

        # SCAN may return a key more than once
        return list(dict.fromkeys(found))

    async def _delete_physical(self, keys: Sequence[str]) -> int:
        """DEL in batches. Returns number of keys removed."""
        deleted = 0
        for i in range(0, len(keys), _BATCH_SIZE):
            deleted += int(await self._client.delete(*keys[i : i + _BATCH_SIZE]))
        return deleted

    def _queue_tag_ttl(self, pipe: Any, tags: Sequence[str], ttl: int | None) -> int:
        for tag in tags:
            tag_key = self._make_tag_key(tag)
            if ttl:
                pipe.expire(tag_key, ttl, nx=True)
                pipe.expire(tag_key, ttl, gt=True)
            else:
                pipe.persist(tag_key)
        return len(tags) * (2 if ttl else 1)

    def _queue_set(self, pipe: Any, physical: str, payload: str, ttl: int | None, tags: Sequence[str]) -> int:
        """Queue a value write with its tag index updates. Returns number of queued commands."""
        pipe.set(physical, payload, ex=ttl, get=True)
        for tag in tags:
            pipe.sadd(self._make_tag_key(tag), physical)
        return 1 + len(tags) + self._queue_tag_ttl(pipe, tags, ttl)

    async def _untag(self, removed: Sequence[tuple[str, str | None, Sequence[str]]]) -> None:
        """
        Remove keys from tag indices they no longer belong to.

        Args:
            removed: (physical key, previous payload, tags the key keeps) triples
        """
        pipe = self._client.pipeline(transaction=False)
        queued = 0

        for physical, previous, keep in removed:
            old = self.codec.decode(previous) if previous is not None else None
            if old is None:
                continue
            for tag in old.tags:
                if tag not in keep:
                    pipe.srem(self._make_tag_key(tag), physical)
                    queued += 1

        if queued:
            await pipe.execute()

    def _check(self, raw: str | None, physical: str, field: str = "") -> CacheEntry | None:
        """Decode a payload; expired envelopes are scheduled for deletion and read as misses."""
        entry = self.codec.decode(raw)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired():
            self._misses += 1
            self._schedule_cleanup(physical, raw, field)
            return None

        self._hits += 1
        return entry

    def _schedule_cleanup(self, physical: str, raw: str | None, field: str) -> None:
        task = asyncio.create_task(self._cleanup(physical, raw, field))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_done)

    def _cleanup_done(self, task: asyncio.Task[None]) -> None:
        self._cleanup_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Background cleanup of expired entry failed: {error}", extra={"error": str(error)})

    async def _cleanup(self, physical: str, raw: str | None, field: str) -> None:
        """Delete an expired entry unless it was rewritten since it was read."""
        entry = self.codec.decode(raw)
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(physical)
                current = await (pipe.hget(physical, field) if field else pipe.get(physical))
                if current != raw:
                    return

                pipe.multi()
                if field:
                    pipe.hdel(physical, field)
                else:
                    pipe.delete(physical)
                    for tag in entry.tags if entry else []:
                        pipe.srem(self._make_tag_key(tag), physical)
                await pipe.execute()
                logger.debug(f"Deleted expired cache entry {physical}", extra={"key": physical, "field": field})
            except WatchError:
                logger.debug(f"Expired entry {physical} changed during cleanup, keeping it")

    async def _rewrite_ttl(self, physical: str, ttl: int | None, field: str = "") -> bool:
        """Compare-and-set the TTL of an existing entry, retrying on concurrent writes."""
        ttl = ttl if ttl and ttl > 0 else None

        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(physical)
                    raw = await (pipe.hget(physical, field) if field else pipe.get(physical))
                    entry = self.codec.decode(raw)
                    if entry is None or entry.is_expired():
                        return False

                    pipe.multi()
                    if field:
                        pipe.hset(physical, field, self.codec.encode_entry(entry.with_ttl(ttl)))
                    elif entry.is_envelope:
                        pipe.set(physical, self.codec.encode_entry(entry.with_ttl(ttl)), ex=ttl)
                        self._queue_tag_ttl(pipe, entry.tags, ttl)
                    elif ttl:
                        pipe.expire(physical, ttl)
                    else:
                        pipe.persist(physical)

                    await pipe.execute()
                    return True
                except WatchError:
                    logger.debug(f"Key {physical} changed during TTL update, retrying")
                    continue

    # ------------ Operations shared with pipelines ------------

    def _queue_op(self, pipe: Any, op: PipelineOp) -> tuple[int, Finisher]:
        """
        Queue one operation on a redis pipeline.

        Returns:
            Number of queued commands and a coroutine function turning their
            replies into the operation's result
        """
        namespace = self._resolve_namespace(op.options)
        physical = self._make_key(op.key, namespace)

        if op.command == "set":
            ttl = self._ttl_seconds(op.ttl, op.options)
            tags = self._resolve_tags(op.options)
            payload = self._encode(op.value, ttl, op.options, tags)

            async def _finish_set(replies: list[Any]) -> bool:
                await self._untag([(physical, replies[0], tags)])
                self._sets += 1
                return True

            return self._queue_set(pipe, physical, payload, ttl, tags), _finish_set

        if op.command == "get":
            pipe.get(physical)

            async def _finish_get(replies: list[Any]) -> Any:
                return self._present(self._check(replies[0], physical), op.options)

            return 1, _finish_get

        if op.command == "delete":
            pipe.getdel(physical)

            async def _finish_delete(replies: list[Any]) -> bool:
                if replies[0] is None:
                    return False
                await self._untag([(physical, replies[0], ())])
                self._deletes += 1
                return True

            return 1, _finish_delete

        if op.command == "expire":
            # TTL rewrites read the envelope first, so they run after the batch
            async def _finish_expire(replies: list[Any]) -> bool:
                return await self._rewrite_ttl(physical, op.ttl)

            return 0, _finish_expire

        raise ValueError(f"Unknown operation: {op.command}")

    # ------------ Basic contract ------------

    async def get_entry(self, key: str, hash: str = "", options: CacheOptions | None = None) -> CacheEntry | None:
        namespace = self._resolve_namespace(options)

        with self._errors("get"):
            if hash:
                hash_key = self._make_hash_key(key, namespace)
                return self._check(await self._client.hget(hash_key, hash), hash_key, hash)

            physical = self._make_key(key, namespace)
            return self._check(await self._client.get(physical), physical)

    async def get(self, key: str, hash: str = "", options: CacheOptions | None = None) -> Any | None:
        """Retrieve a value by key."""
        return self._present(await self.get_entry(key, hash, options), options)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        hash: str = "",
        options: CacheOptions | None = None,
    ) -> bool:
        """Store a value with optional TTL."""
        if not hash:
            results = await self._run_pipeline(
                [PipelineOp("set", key, value=value, ttl=ttl, options=options)],
                transaction=True,
            )
            return results[0]

        namespace = self._resolve_namespace(options)
        payload = self._encode(value, self._ttl_seconds(ttl, options), options, [])

        with self._errors("set"):
            await self._client.hset(self._make_hash_key(key, namespace), hash, payload)

        self._sets += 1
        return True

    async def mget(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> list[Any | None]:
        """
        Retrieve multiple values in one round-trip.
        One result per key, in order; misses and expired entries are None.
        """
        if not keys:
            return []

        namespace = self._resolve_namespace(options)

        with self._errors("mget"):
            if hash:
                hash_keys = [self._make_hash_key(key, namespace) for key in keys]
                pipe = self._client.pipeline(transaction=False)
                for hash_key in hash_keys:
                    pipe.hget(hash_key, hash)
                raws = await pipe.execute()
                return [
                    self._present(self._check(raw, hash_key, hash), options)
                    for hash_key, raw in zip(hash_keys, raws, strict=True)
                ]

            physicals = [self._make_key(key, namespace) for key in keys]
            raws = await self._client.mget(physicals)
            return [
                self._present(self._check(raw, physical), options)
                for physical, raw in zip(physicals, raws, strict=True)
            ]

    async def mset(
        self,
        entries: dict[str, Any],
        hash: str = "",
        ttl: int | None = None,
        options: CacheOptions | None = None,
    ) -> bool:
        """
        Store multiple values in one transaction. Applies the same TTL to all items.
        Every payload is encoded before anything is sent.
        """
        if not entries:
            return True

        if not hash:
            ops = [PipelineOp("set", key, value=value, ttl=ttl, options=options) for key, value in entries.items()]
            await self._run_pipeline(ops, transaction=True, raise_on_error=True)
            return True

        namespace = self._resolve_namespace(options)
        ttl = self._ttl_seconds(ttl, options)
        payloads = {key: self._encode(value, ttl, options, []) for key, value in entries.items()}

        with self._errors("mset"):
            pipe = self._client.pipeline(transaction=True)
            for key, payload in payloads.items():
                pipe.hset(self._make_hash_key(key, namespace), hash, payload)
            await pipe.execute()

        self._sets += len(payloads)
        return True

    async def delete_keys(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> list[str]:
        """Delete in one pipeline. Returns the keys that were present."""
        if not keys:
            return []

        namespace = self._resolve_namespace(options)

        with self._errors("delete"):
            pipe = self._client.pipeline(transaction=False)

            if hash:
                for key in keys:
                    pipe.hdel(self._make_hash_key(key, namespace), hash)
                counts = await pipe.execute()
                removed_keys = [key for key, count in zip(keys, counts, strict=True) if int(count)]
            else:
                physicals = [self._make_key(key, namespace) for key in keys]
                for physical in physicals:
                    pipe.getdel(physical)
                previous = await pipe.execute()
                removed = [
                    (physical, raw, ()) for physical, raw in zip(physicals, previous, strict=True) if raw is not None
                ]
                await self._untag(removed)
                removed_keys = [key for key, raw in zip(keys, previous, strict=True) if raw is not None]

        self._deletes += len(removed_keys)
        return removed_keys

    async def delete(self, key: str, hash: str = "", options: CacheOptions | None = None) -> bool:
        """Delete a single key."""
        return bool(await self.delete_keys([key], hash, options))

    async def delete_many(self, keys: Sequence[str], hash: str = "", options: CacheOptions | None = None) -> bool:
        return bool(await self.delete_keys(keys, hash, options))

    async def keys(self, pattern: str = "*", hash: str = "", options: CacheOptions | None = None) -> list[str]:
        namespace = self._resolve_namespace(options)

        with self._errors("keys"):
            if not hash:
                physicals = await self._scan(self._namespace_pattern(namespace, pattern))
                return [self._logical_key(physical, namespace) for physical in physicals]

            hash_keys = await self._scan(self._namespace_pattern(namespace, pattern, self.hash_prefix))
            if not hash_keys:
                return []

            pipe = self._client.pipeline(transaction=False)
            for hash_key in hash_keys:
                pipe.hexists(hash_key, hash)
            present = await pipe.execute()

            return [
                self._logical_key(hash_key, namespace, self.hash_prefix)
                for hash_key, has_field in zip(hash_keys, present, strict=True)
                if has_field
            ]

    async def clear(self, hash: str = "") -> bool:
        """
        Clear every key this adapter owns (values, tag indices, hash records),
        or one sub-field of every hash record.

        Implementation: SCAN match "<prefix>*" and DEL in batches.
        """
        with self._errors("clear"):
            if hash:
                hash_keys = await self._scan(f"{glob.escape(self.hash_prefix)}*")
                pipe = self._client.pipeline(transaction=False)
                for hash_key in hash_keys:
                    pipe.hdel(hash_key, hash)
                if hash_keys:
                    await pipe.execute()
                logger.info(f"Cleared hash '{hash}' from {len(hash_keys)} Redis hash records")
                return True

            total_deleted = 0
            for prefix in (self.key_prefix, self.tag_prefix, self.hash_prefix):
                keys = await self._scan(f"{glob.escape(prefix)}*")
                total_deleted += await self._delete_physical(keys)

        self._deletes += total_deleted
        logger.info(f"Cleared {total_deleted} keys from Redis")
        return True

    async def is_alive(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}", extra={"error": str(e)})
            return False

    async def size(self) -> int:
        with self._errors("size"):
            values = await self._scan(f"{glob.escape(self.key_prefix)}*")
            records = await self._scan(f"{glob.escape(self.hash_prefix)}*")
        return len(values) + len(records)

    async def hash_fields(self, key: str, options: CacheOptions | None = None) -> list[str]:
        hash_key = self._make_hash_key(key, self._resolve_namespace(options))
        with self._errors("hash_fields"):
            return list(await self._client.hkeys(hash_key))

    async def extend_ttl(self, key: str, ttl: int, hash: str = "", options: CacheOptions | None = None) -> bool:
        namespace = self._resolve_namespace(options)
        physical = self._make_hash_key(key, namespace) if hash else self._make_key(key, namespace)

        with self._errors("extend_ttl"):
            return await self._rewrite_ttl(physical, ttl, hash)

    async def close(self) -> None:
        """Close the Redis client and release resources."""
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)

        try:
            await self._client.aclose()
            logger.info(f"Closed Redis cache backend for namespace '{self._namespace}'")
        except Exception as e:
            logger.error(
                f"Error closing Redis client: {e}", extra={"namespace": self._namespace, "error": str(e)}, exc_info=True
            )
        finally:
            # Ensure pool disconnect
            try:
                await self._client.connection_pool.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting Redis connection pool: {e}", extra={"error": str(e)})

    # ------------ Enhanced contract ------------

    async def mdel(self, keys: Sequence[str], options: CacheOptions | None = None) -> int:
        return len(await self.delete_keys(keys, options=options))

    async def exists(self, key: str, options: CacheOptions | None = None) -> bool:
        physical = self._make_key(key, self._resolve_namespace(options))
        with self._errors("exists"):
            entry = self.codec.decode(await self._client.get(physical))
        return entry is not None and not entry.is_expired()

    async def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> bool:
        physical = self._make_key(key, self._resolve_namespace(options))
        with self._errors("expire"):
            return await self._rewrite_ttl(physical, ttl)

    async def ttl(self, key: str, options: CacheOptions | None = None) -> int:
        physical = self._make_key(key, self._resolve_namespace(options))

        with self._errors("ttl"):
            pipe = self._client.pipeline(transaction=False)
            pipe.get(physical)
            pipe.ttl(physical)
            raw, native = await pipe.execute()

        entry = self.codec.decode(raw)
        if entry is None or entry.is_expired():
            return -2
        if entry.is_envelope:
            remaining = entry.remaining_ttl()
            return -1 if remaining is None else remaining
        return int(native)

    async def increment(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        physical = self._make_key(key, self._resolve_namespace(options))
        ttl = self._ttl_seconds(None, options)

        with self._errors("increment"):
            pipe = self._client.pipeline(transaction=True)
            # Counter starts at 0 with the effective TTL; INCRBY keeps it
            pipe.set(physical, 0, nx=True, ex=ttl)
            pipe.incrby(physical, amount)
            _, value = await pipe.execute()

        return int(value)

    async def decrement(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        return await self.increment(key, -amount, options)

    async def flush_namespace(self, namespace: str | None = None) -> int:
        namespace = self._validate_namespace(namespace) if namespace else self._namespace

        with self._errors("flush_namespace"):
            keys = await self._scan(self._namespace_pattern(namespace))
            keys += await self._scan(self._namespace_pattern(namespace, prefix=self.hash_prefix))
            deleted = await self._delete_physical(keys)

        self._deletes += deleted
        logger.info(f"Flushed {deleted} keys from namespace '{namespace}'")
        return deleted

    async def flush_by_tags(self, tags: Sequence[str]) -> int:
        if not tags:
            return 0

        tag_keys = [self._make_tag_key(tag) for tag in tags]

        with self._errors("flush_by_tags"):
            pipe = self._client.pipeline(transaction=False)
            for tag_key in tag_keys:
                pipe.smembers(tag_key)
            members: set[str] = set().union(*await pipe.execute())

            deleted = await self._delete_physical(sorted(members))
            await self._client.delete(*tag_keys)

        self._deletes += deleted
        logger.info(f"Flushed {deleted} keys tagged with {list(tags)}")
        return deleted

    async def get_stats(self) -> dict[str, Any]:
        """Return cache statistics and basic Redis info."""
        stats: dict[str, Any] = {
            "backend": self.name,
            "namespace": self._namespace,
            "default_ttl": self.default_ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": 0.0,
            "sets": self._sets,
            "deletes": self._deletes,
            "connected": False,
        }

        total_requests = self._hits + self._misses
        stats["hit_rate"] = round((self._hits / total_requests) * 100, 2) if total_requests else 0.0

        try:
            # PING to check connectivity
            pong = await self._client.ping()
            stats["connected"] = bool(pong)

            # Fetch minimal INFO for insight (server + keyspace)
            info = await self._client.info(section="server")
            keyspace = await self._client.info(section="keyspace")

            stats["redis_version"] = info.get("redis_version")
            stats["redis_mode"] = info.get("redis_mode")
            # DB-wide counters, not filtered by namespace
            stats["keyspace"] = keyspace
        except Exception as e:
            # If INFO is restricted or fails, keep minimal stats
            logger.warning(f"Failed to get Redis INFO (restricted or unavailable): {e}", extra={"error": str(e)})

        return stats

    async def get_keys_by_namespace(self, namespace: str | None = None, pattern: str = "*") -> list[str]:
        namespace = self._validate_namespace(namespace) if namespace else self._namespace
        with self._errors("get_keys_by_namespace"):
            return await self._scan(self._namespace_pattern(namespace, pattern))

    async def get_keys_by_tags(self, tags: Sequence[str]) -> list[str]:
        """Live keys indexed under any of the tags; dead index members are pruned."""
        if not tags:
            return []

        with self._errors("get_keys_by_tags"):
            pipe = self._client.pipeline(transaction=False)
            for tag in tags:
                pipe.smembers(self._make_tag_key(tag))
            members = sorted(set().union(*await pipe.execute()))
            if not members:
                return []

            pipe = self._client.pipeline(transaction=False)
            for physical in members:
                pipe.exists(physical)
            live = await pipe.execute()

            dead = [physical for physical, alive in zip(members, live, strict=True) if not alive]
            if dead:
                pipe = self._client.pipeline(transaction=False)
                for tag in tags:
                    pipe.srem(self._make_tag_key(tag), *dead)
                await pipe.execute()

        return [physical for physical, alive in zip(members, live, strict=True) if alive]

    def pipeline(self, key_transform: Callable[[str], str] | None = None) -> RedisPipeline:
        return RedisPipeline(self, key_transform=key_transform)

    async def _run_pipeline(
        self,
        ops: Sequence[PipelineOp],
        transaction: bool = False,
        raise_on_error: bool = False,
    ) -> list[Any]:
        pipeline = RedisPipeline(self, transaction=transaction, strict=raise_on_error)
        for op in ops:
            pipeline._queue(op)
        results = await pipeline.execute()

        if raise_on_error or len(ops) == 1:
            error = next((result for result in results if isinstance(result, Exception)), None)
            if error is not None:
                raise error
        return results

    async def transaction(self, operations: Sequence[PipelineOp]) -> list[Any]:
        """
        Run operations in one MULTI/EXEC block.

        Redis applies every queued command even when one of them fails; the first
        failure is raised after the block ran.
        """
        return await self._run_pipeline(operations, transaction=True, raise_on_error=True)


class RedisPipeline(CachePipeline):
    """
    Pipeline sending every queued operation in one Redis round trip.

    With ``strict``, an operation that cannot be queued (invalid key or value)
    aborts the whole batch before anything is sent.
    """

    def __init__(
        self,
        adapter: RedisCacheBackend,
        key_transform: Callable[[str], str] | None = None,
        transaction: bool = False,
        strict: bool = False,
    ):
        super().__init__(adapter, key_transform=key_transform)
        self._transaction = transaction
        self._strict = strict

    async def execute(self) -> list[Any]:
        adapter: RedisCacheBackend = self._adapter  # type: ignore[assignment]
        ops = self._drain()

        pipe = adapter._client.pipeline(transaction=self._transaction)
        plans: list[tuple[int, int, Finisher] | Exception] = []
        cursor = 0

        for op in ops:
            try:
                count, finish = adapter._queue_op(pipe, op)
            except Exception as e:
                # Invalid key or value: this slot fails, the rest still run
                plans.append(e)
                continue
            plans.append((cursor, cursor + count, finish))
            cursor += count

        if self._strict:
            invalid = next((plan for plan in plans if isinstance(plan, Exception)), None)
            if invalid is not None:
                raise invalid

        replies: list[Any] = []
        if cursor:
            with adapter._errors("pipeline"):
                replies = await pipe.execute(raise_on_error=False)

        results: list[Any] = []
        for op, plan in zip(ops, plans, strict=True):
            if isinstance(plan, Exception):
                results.append(plan)
                continue

            start, end, finish = plan
            slot = replies[start:end]
            error = next((reply for reply in slot if isinstance(reply, Exception)), None)

            try:
                if error is not None:
                    raise adapter._translate(error, op.command)
                results.append(await finish(slot))
            except Exception as e:
                logger.warning(
                    f"Pipeline {op.command} failed for key '{op.key}': {e}",
                    extra={"command": op.command, "key": op.key, "error": str(e)},
                )
                results.append(e)

        return results
