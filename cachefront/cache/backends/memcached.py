"""
cachefront - Memcached Cache Backend

Basic-capability backend over pymemcache. The blocking client runs in worker
threads (``asyncio.to_thread``) so it never blocks the event loop.

Memcached cannot enumerate keys: ``keys()`` returns an empty list and
``clear()`` flushes the whole server. Legacy hash records are one JSON document
per primary key, updated with gets/cas.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from ...errors import CacheConnectionError, CacheOperationError
from ..codec import CacheEntry, ValueCodec
from ..interface import KEY_SEPARATOR, CacheAdapter, validate_namespace
from ..keys import validate_key_length

logger = logging.getLogger(__name__)

try:
    from pymemcache.client.hash import HashClient
    from pymemcache.exceptions import MemcacheError, MemcacheUnexpectedCloseError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "pymemcache is required for the memcached backend. Install with: pip install 'pymemcache>=4.0.0'"
    ) from e

# Memcached protocol limits
_MAX_KEY_BYTES = 250
_MAX_RELATIVE_EXPIRE = 30 * 24 * 3600
_CAS_ATTEMPTS = 10
# A negative exptime expires the item immediately
_EXPIRE_NOW = -1


def _parse_server(server: str) -> tuple[str, int]:
    host, _, port = server.rpartition(":")
    if not host:
        return server, 11211
    return host, int(port)


class MemcachedCacheBackend(CacheAdapter):
    """
    Memcached cache backend (basic capability only).

    Notes:
    - Keys longer than 250 bytes or containing whitespace are replaced by an MD5 digest.
    - TTLs above 30 days are sent as absolute timestamps, as the protocol requires.
    """

    name = "memcached"

    def __init__(
        self,
        servers: Sequence[str] | str = "localhost:11211",
        namespace: str = "default",
        default_ttl: int = 3600,
        key_prefix: str = "cache:",
        hash_prefix: str = "hash:",
        enable_compression: bool = False,
        compression_threshold: int = 1024,
        max_key_length: int = 250,
        max_value_size: int = 512 * 1024,
        connect_timeout: int = 5,
        client: Any | None = None,
    ):
        """
        Initialize Memcached cache backend.

        Args:
            servers: "host:port" strings
            namespace: Namespace for keys
            default_ttl: TTL applied when a write gives none (0 = no expiry)
            key_prefix: Prefix of every value key
            hash_prefix: Prefix of legacy hash records
            enable_compression: Compress payloads above compression_threshold
            compression_threshold: Payload length above which to compress
            max_key_length: Max raw key length
            max_value_size: Max serialized payload size in bytes
            connect_timeout: Connect and socket timeout in seconds
            client: Existing pymemcache-compatible client (replaces servers)
        """
        if isinstance(servers, str):
            servers = [servers]

        self.namespace = validate_namespace(namespace)
        self.default_ttl = max(0, int(default_ttl))
        self.key_prefix = key_prefix
        self.hash_prefix = hash_prefix
        self.max_key_length = max_key_length
        self.codec = ValueCodec(
            enable_compression=enable_compression,
            compression_threshold=compression_threshold,
            max_value_size=max_value_size,
        )

        self._client = client or HashClient(
            [_parse_server(server) for server in servers],
            connect_timeout=connect_timeout,
            timeout=connect_timeout,
            default_noreply=False,
        )
        self._cleanup_tasks: set[asyncio.Task[Any]] = set()

    # ------------ Helpers ------------

    def _physical(self, prefix: str, key: str) -> str:
        validate_key_length(key, self.max_key_length)
        full_key = f"{prefix}{self.namespace}{KEY_SEPARATOR}{key}"
        if len(full_key.encode("utf-8")) > _MAX_KEY_BYTES or any(c.isspace() for c in full_key):
            return hashlib.md5(full_key.encode("utf-8")).hexdigest()
        return full_key

    def _make_key(self, key: str) -> str:
        return self._physical(self.key_prefix, key)

    def _make_hash_key(self, key: str) -> str:
        return self._physical(self.hash_prefix, key)

    def _expire(self, ttl: int | None) -> int:
        """Resolve a TTL into the memcached expire field (0 = never)."""
        if ttl is None:
            ttl = self.default_ttl
        ttl = int(ttl)
        if ttl <= 0:
            return 0
        if ttl > _MAX_RELATIVE_EXPIRE:
            return int(time.time()) + ttl
        return ttl

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking client call in a worker thread, translating client errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (OSError, MemcacheUnexpectedCloseError) as e:
            raise CacheConnectionError(self.name, operation, {"error": str(e)}) from e
        except MemcacheError as e:
            raise CacheOperationError(
                f"Memcached {operation} failed: {e}",
                {"backend": self.name, "operation": operation, "error": str(e)},
            ) from e

    def _check(self, physical: str, raw: bytes | None) -> CacheEntry | None:
        entry = self.codec.decode(raw)
        if entry is None:
            return None
        if entry.is_expired():
            task = asyncio.create_task(self._call("delete", self._discard_expired, physical, raw))
            self._cleanup_tasks.add(task)
            task.add_done_callback(self._cleanup_done)
            return None
        return entry

    def _discard_expired(self, physical: str, raw: bytes | None) -> bool:
        """Expire the record only if it still holds the stale payload that was read."""
        current, token = self._client.gets(physical)
        if current is None or current != raw:
            return False
        return bool(self._client.cas(physical, current, token, expire=_EXPIRE_NOW))

    def _cleanup_done(self, task: asyncio.Task[Any]) -> None:
        self._cleanup_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Background cleanup of expired entry failed: {error}", extra={"error": str(error)})

    @staticmethod
    def _load_record(raw: bytes | None) -> dict[str, str]:
        if raw is None:
            return {}
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable hash record")
            return {}
        return record if isinstance(record, dict) else {}

    def _update_record(self, record_key: str, mutate: Callable[[dict[str, str]], bool]) -> bool:
        """
        Apply mutate to a hash record with gets/cas (runs in a worker thread).

        Returns:
            What mutate returned (False = nothing changed, nothing written)
        """
        for _ in range(_CAS_ATTEMPTS):
            raw, token = self._client.gets(record_key)
            record = self._load_record(raw)
            if not mutate(record):
                return False

            payload = json.dumps(record, separators=(",", ":")).encode("utf-8")
            if raw is None:
                stored = self._client.add(record_key, payload, expire=0)
            elif not record:
                stored = self._client.delete(record_key)
            else:
                stored = self._client.cas(record_key, payload, token, expire=0)

            if stored:
                return True
            logger.debug(f"Hash record {record_key} changed concurrently, retrying")

        raise CacheOperationError(
            f"Gave up updating hash record after {_CAS_ATTEMPTS} attempts",
            {"backend": self.name, "key": record_key},
        )

    async def _read_field(self, key: str, hash: str) -> CacheEntry | None:
        raw = await self._call("get", self._client.get, self._make_hash_key(key))
        payload = self._load_record(raw).get(hash)
        entry = self.codec.decode(payload)
        if entry is None or entry.is_expired():
            return None
        return entry

    async def _write_field(self, key: str, hash: str, payload: str) -> bool:
        def _set_field(record: dict[str, str]) -> bool:
            record[hash] = payload
            return True

        return await self._call("set", self._update_record, self._make_hash_key(key), _set_field)

    # ------------ Basic contract ------------

    async def get_entry(self, key: str, hash: str = "") -> CacheEntry | None:
        if hash:
            return await self._read_field(key, hash)

        physical = self._make_key(key)
        return self._check(physical, await self._call("get", self._client.get, physical))

    async def get(self, key: str, hash: str = "") -> Any | None:
        entry = await self.get_entry(key, hash)
        return None if entry is None else entry.data

    async def set(self, key: str, value: Any, ttl: int | None = None, hash: str = "") -> bool:
        payload = self.codec.encode(value, ttl=int(ttl if ttl is not None else self.default_ttl))

        if hash:
            return await self._write_field(key, hash, payload)

        physical = self._make_key(key)
        stored = await self._call("set", self._client.set, physical, payload.encode("utf-8"), expire=self._expire(ttl))
        return bool(stored)

    async def mget(self, keys: Sequence[str], hash: str = "") -> list[Any | None]:
        if not keys:
            return []

        if hash:
            entries = [await self._read_field(key, hash) for key in keys]
            return [None if entry is None else entry.data for entry in entries]

        physicals = [self._make_key(key) for key in keys]
        found = await self._call("mget", self._client.get_many, physicals)

        values: list[Any | None] = []
        for physical in physicals:
            entry = self._check(physical, found.get(physical))
            values.append(None if entry is None else entry.data)
        return values

    async def mset(self, entries: dict[str, Any], hash: str = "", ttl: int | None = None) -> bool:
        if not entries:
            return True

        ttl = int(ttl if ttl is not None else self.default_ttl)
        payloads = {key: self.codec.encode(value, ttl=ttl) for key, value in entries.items()}

        if hash:
            results = [await self._write_field(key, hash, payload) for key, payload in payloads.items()]
            return all(results)

        values = {self._make_key(key): payload.encode("utf-8") for key, payload in payloads.items()}
        failed = await self._call("mset", self._client.set_many, values, expire=self._expire(ttl))
        if failed:
            logger.warning(f"Memcached failed to store {len(failed)} keys", extra={"failed": list(failed)})
        return not failed

    async def delete(self, key: str, hash: str = "") -> bool:
        if hash:

            def _drop_field(record: dict[str, str]) -> bool:
                return record.pop(hash, None) is not None

            return await self._call("delete", self._update_record, self._make_hash_key(key), _drop_field)

        return bool(await self._call("delete", self._client.delete, self._make_key(key)))

    async def delete_many(self, keys: Sequence[str], hash: str = "") -> bool:
        return bool(await self.delete_keys(keys, hash))

    async def keys(self, pattern: str = "*", hash: str = "") -> list[str]:
        # Memcached has no key enumeration
        return []

    async def clear(self, hash: str = "") -> bool:
        if hash:
            logger.warning("Memcached cannot enumerate hash records; clear(hash) is not supported")
            return False

        await self._call("clear", self._client.flush_all)
        logger.info("Flushed all memcached servers")
        return True

    async def is_alive(self) -> bool:
        try:
            versions = await asyncio.to_thread(lambda: [c.version() for c in self._client.clients.values()])
            return bool(versions) and all(versions)
        except Exception as e:
            logger.warning(f"Memcached ping failed: {e}", extra={"error": str(e)})
            return False

    async def size(self) -> int:
        def _curr_items() -> int:
            total = 0
            for client in self._client.clients.values():
                stats = client.stats()
                total += int(stats.get(b"curr_items", stats.get("curr_items", 0)))
            return total

        return await self._call("size", _curr_items)

    async def hash_fields(self, key: str) -> list[str]:
        raw = await self._call("get", self._client.get, self._make_hash_key(key))
        fields = []
        for field, payload in self._load_record(raw).items():
            entry = self.codec.decode(payload)
            if entry is not None and not entry.is_expired():
                fields.append(field)
        return fields

    async def extend_ttl(self, key: str, ttl: int, hash: str = "") -> bool:
        """Rewrite the envelope and memcached expiry with gets/cas."""
        if hash:

            def _retouch(record: dict[str, str]) -> bool:
                entry = self.codec.decode(record.get(hash))
                if entry is None or entry.is_expired():
                    return False
                record[hash] = self.codec.encode_entry(entry.with_ttl(ttl))
                return True

            return await self._call("extend_ttl", self._update_record, self._make_hash_key(key), _retouch)

        physical = self._make_key(key)

        def _rewrite() -> bool:
            for _ in range(_CAS_ATTEMPTS):
                raw, token = self._client.gets(physical)
                entry = self.codec.decode(raw)
                if entry is None or entry.is_expired():
                    return False
                payload = self.codec.encode_entry(entry.with_ttl(ttl)).encode("utf-8")
                if self._client.cas(physical, payload, token, expire=self._expire(ttl or 0)):
                    return True
            return False

        return await self._call("extend_ttl", _rewrite)

    async def close(self) -> None:
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
        try:
            await asyncio.to_thread(self._client.close)
            logger.info("Closed memcached cache backend")
        except Exception as e:
            logger.error(f"Error closing memcached client: {e}", extra={"error": str(e)}, exc_info=True)
