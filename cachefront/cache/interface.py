"""
cachefront - Cache Adapter Interface

Defines the contracts cache backends implement.

Two capability levels are declared statically on each adapter class:
- BASIC: scalar and batch get/set/delete, enumeration, legacy hash-keyed API
- ENHANCED: BASIC plus namespaces, tags, counters, TTL control, pipelines

Managers check the capability once, at construction.
"""

from __future__ import annotations

import fnmatch
import glob
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from ..errors import InvalidNamespaceError
from .codec import CacheEntry, ValueCodec
from .keys import validate_key_length

if TYPE_CHECKING:
    from .pipeline import CachePipeline, PipelineOp

KEY_SEPARATOR = "::"


def validate_namespace(namespace: str) -> str:
    """
    Check a namespace can be embedded in a physical key unambiguously.

    A colon anywhere in the namespace can merge with the separator (``ns:`` +
    ``x`` and ``ns`` + ``:x`` both give ``ns:::x``).

    Raises:
        InvalidNamespaceError: Empty namespace or one containing ":"
    """
    if not isinstance(namespace, str) or not namespace:
        raise InvalidNamespaceError(str(namespace), "namespace must be a non-empty string")
    if ":" in namespace:
        raise InvalidNamespaceError(namespace, "namespace must not contain ':'")
    return namespace


class CacheCapability(str, Enum):
    """Operation set an adapter implements."""

    BASIC = "basic"
    ENHANCED = "enhanced"


@dataclass
class CacheOptions:
    """
    Per-call options for enhanced operations.

    Attributes:
        ttl: Time-to-live in seconds (None = default, 0 = no expiry)
        namespace: Namespace override (None = adapter/manager default)
        tags: Tags to index the written keys under
        compression: Per-call compression override (None = adapter default)
        metadata: Flat mapping stored beside the value
        include_metadata: Return CacheEntry objects instead of bare values on reads
    """

    ttl: int | None = None
    namespace: str | None = None
    tags: list[str] = field(default_factory=list)
    compression: bool | None = None
    metadata: dict[str, Any] | None = None
    include_metadata: bool = False


@dataclass
class CacheStats:
    """Cumulative operation counters plus the live key count."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0
    key_count: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage of lookups."""
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "errors": self.errors,
            "key_count": self.key_count,
            "hit_rate": self.hit_rate,
        }


class CacheAdapter(ABC):
    """
    Abstract base class for cache backends (BASIC capability).

    ``hash`` is the legacy secondary key dimension: a non-empty hash addresses a
    sub-field stored under the primary key, invisible to reads without a hash.
    The empty string means "no hash".
    """

    capability: ClassVar[CacheCapability] = CacheCapability.BASIC
    name: ClassVar[str] = "adapter"

    @abstractmethod
    async def get(self, key: str, hash: str = "") -> Any | None:
        """
        Retrieve a value.

        Returns:
            The cached value, or None when missing or expired
        """
        pass

    @abstractmethod
    async def get_entry(self, key: str, hash: str = "") -> CacheEntry | None:
        """Retrieve the full entry (value plus envelope) or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None, hash: str = "") -> bool:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time-to-live in seconds (None = use default, 0 = no expiry)
            hash: Optional legacy sub-field

        Returns:
            True if stored successfully
        """
        pass

    @abstractmethod
    async def mget(self, keys: Sequence[str], hash: str = "") -> list[Any | None]:
        """Retrieve several values; one result per key, in order, None for misses."""
        pass

    @abstractmethod
    async def mset(self, entries: dict[str, Any], hash: str = "", ttl: int | None = None) -> bool:
        """Store several values with one TTL. Returns True if every entry was stored."""
        pass

    @abstractmethod
    async def delete(self, key: str, hash: str = "") -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed and was removed, False otherwise
        """
        pass

    @abstractmethod
    async def delete_many(self, keys: Sequence[str], hash: str = "") -> bool:
        """Delete several keys. Returns True if at least one key was removed."""
        pass

    async def delete_keys(self, keys: Sequence[str], hash: str = "", **kwargs: Any) -> list[str]:
        """
        Delete several keys and report which ones were present.

        Backends with a batch primitive override this; the default issues one
        delete per key.

        Returns:
            The keys that existed and were removed, in request order
        """
        return [key for key in keys if await self.delete(key, hash, **kwargs)]

    @abstractmethod
    async def keys(self, pattern: str = "*", hash: str = "") -> list[str]:
        """
        List logical keys matching a glob pattern.

        Without a hash, lists keys holding plain values; with a hash, lists
        primary keys that have that sub-field.
        """
        pass

    @abstractmethod
    async def clear(self, hash: str = "") -> bool:
        """
        Remove everything this adapter owns, or only the given sub-field of every
        hash record when hash is non-empty.
        """
        pass

    @abstractmethod
    async def is_alive(self) -> bool:
        """Check the backend connection. Never raises."""
        pass

    @abstractmethod
    async def size(self) -> int:
        """Number of entries currently stored."""
        pass

    @abstractmethod
    async def hash_fields(self, key: str) -> list[str]:
        """Sub-field names (hashes) stored under a primary key."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the backend and release resources.

        Should be called during graceful shutdown.
        """
        pass

    def get_name(self, key: str | None = None) -> str:
        """Adapter name used in telemetry and logs."""
        return self.name

    async def extend_ttl(self, key: str, ttl: int, hash: str = "") -> bool:
        """
        Atomically reset the TTL of an existing entry.

        Raises:
            NotImplementedError: If the backend has no atomic TTL rewrite
        """
        raise NotImplementedError(f"{self.name} adapter does not support atomic TTL updates")

    # Legacy API

    async def load(self, key: str, ttl: int, hash: str = "") -> Any:
        """
        Load a value saved with ``save``.

        With a hash, the value is valid only while ``saved_at + ttl > now``.
        Without a hash this is an ordinary ``get``.

        Returns:
            The value, or False when there is no valid entry
        """
        if not hash:
            value = await self.get(key)
            return False if value is None else value

        entry = await self.get_entry(key, hash)
        if entry is None or entry.created_at / 1000 + ttl <= time.time():
            return False
        return entry.data

    async def save(self, key: str, data: Any, hash: str = "") -> bool:
        """Save a value; hashed values never expire on their own (``load`` decides)."""
        return await self.set(key, data, 0 if hash else None, hash)

    async def list(self, key: str) -> list[str]:
        return await self.hash_fields(key)

    async def purge(self, key: str, hash: str = "") -> bool:
        return await self.delete(key, hash)

    async def flush(self) -> bool:
        return await self.clear()

    async def ping(self) -> bool:
        return await self.is_alive()

    async def get_size(self) -> int:
        return await self.size()


class EnhancedCacheAdapter(CacheAdapter):
    """
    Cache backend with the ENHANCED capability.

    Physical keys:
        value key    {key_prefix}{namespace}::{key}
        tag index    {tag_prefix}{tag}            (set of value keys)
        hash record  {hash_prefix}{namespace}::{key}

    Read operations re-validate the envelope expiry regardless of the backend TTL.
    """

    capability: ClassVar[CacheCapability] = CacheCapability.ENHANCED

    def __init__(
        self,
        namespace: str = "default",
        default_ttl: int = 3600,
        key_prefix: str = "cache:",
        tag_prefix: str = "tag:",
        hash_prefix: str = "hash:",
        enable_compression: bool = False,
        compression_threshold: int = 1024,
        max_key_length: int = 250,
        max_value_size: int = 512 * 1024,
    ):
        """
        Args:
            namespace: Default namespace for keys
            default_ttl: TTL applied when a write gives none (0 = no expiry)
            key_prefix: Prefix of every value key
            tag_prefix: Prefix of tag index keys
            hash_prefix: Prefix of legacy hash records
            enable_compression: Compress payloads above compression_threshold
            compression_threshold: Payload length above which to compress
            max_key_length: Max raw key length
            max_value_size: Max serialized payload size in bytes
        """
        self._namespace = self._validate_namespace(namespace)
        self.default_ttl = max(0, int(default_ttl))
        self.key_prefix = key_prefix
        self.tag_prefix = tag_prefix
        self.hash_prefix = hash_prefix
        self.max_key_length = max_key_length
        self.codec = ValueCodec(
            enable_compression=enable_compression,
            compression_threshold=compression_threshold,
            max_value_size=max_value_size,
        )

    # ------------ Key building ------------

    @staticmethod
    def _validate_namespace(namespace: str) -> str:
        return validate_namespace(namespace)

    def _resolve_namespace(self, options: CacheOptions | None = None) -> str:
        if options is not None and options.namespace:
            return self._validate_namespace(options.namespace)
        return self._namespace

    def _make_key(self, key: str, namespace: str) -> str:
        """Create the physical value key."""
        validate_key_length(key, self.max_key_length)
        return f"{self.key_prefix}{namespace}{KEY_SEPARATOR}{key}"

    def _make_hash_key(self, key: str, namespace: str) -> str:
        validate_key_length(key, self.max_key_length)
        return f"{self.hash_prefix}{namespace}{KEY_SEPARATOR}{key}"

    def _make_tag_key(self, tag: str) -> str:
        return f"{self.tag_prefix}{tag}"

    def _namespace_pattern(self, namespace: str, pattern: str = "*", prefix: str | None = None) -> str:
        """
        Glob matching keys of exactly one namespace.

        The prefix and namespace are escaped; ``pattern`` keeps its glob meaning.
        """
        prefix = self.key_prefix if prefix is None else prefix
        return f"{glob.escape(prefix)}{glob.escape(namespace)}{KEY_SEPARATOR}{pattern}"

    def _logical_key(self, physical: str, namespace: str, prefix: str | None = None) -> str:
        prefix = self.key_prefix if prefix is None else prefix
        return physical[len(f"{prefix}{namespace}{KEY_SEPARATOR}") :]

    @staticmethod
    def _glob_match(name: str, pattern: str) -> bool:
        """Case-sensitive glob match (``glob.escape`` sequences are honoured)."""
        return re.fullmatch(fnmatch.translate(pattern), name, flags=re.DOTALL) is not None

    # ------------ Options ------------

    def _ttl_seconds(self, ttl: int | None, options: CacheOptions | None = None) -> int | None:
        """
        Resolve the effective TTL:
        - explicit ttl, then options.ttl, then default_ttl
        - 0 or negative -> no expiry (None)
        """
        if ttl is None and options is not None:
            ttl = options.ttl
        if ttl is None:
            ttl = self.default_ttl
        ttl = int(ttl)
        return ttl if ttl > 0 else None

    def _encode(self, value: Any, ttl: int | None, options: CacheOptions | None, tags: list[str]) -> str:
        return self.codec.encode(
            value,
            ttl=ttl,
            metadata=options.metadata if options else None,
            tags=tags,
            compress=options.compression if options else None,
        )

    @staticmethod
    def _resolve_tags(options: CacheOptions | None, hash: str = "") -> list[str]:
        # Tags index plain values only
        if options is None or hash:
            return []
        return list(dict.fromkeys(tag for tag in options.tags if tag))

    @staticmethod
    def _present(entry: CacheEntry | None, options: CacheOptions | None) -> Any | None:
        if entry is None:
            return None
        if options is not None and options.include_metadata:
            return entry
        return entry.data

    # ------------ Namespace ------------

    def set_namespace(self, namespace: str) -> None:
        self._namespace = self._validate_namespace(namespace)

    def get_namespace(self) -> str:
        return self._namespace

    # ------------ Enhanced operations ------------

    @abstractmethod
    async def mdel(self, keys: Sequence[str], options: CacheOptions | None = None) -> int:
        """Delete several keys. Returns the number of keys actually removed."""
        pass

    @abstractmethod
    async def exists(self, key: str, options: CacheOptions | None = None) -> bool:
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> bool:
        """
        Set the TTL of an existing key (0 = persist).

        Returns:
            True if the key exists and its TTL was updated
        """
        pass

    @abstractmethod
    async def ttl(self, key: str, options: CacheOptions | None = None) -> int:
        """
        Remaining TTL in seconds.

        Returns:
            Seconds left, -1 when the key never expires, -2 when the key is missing
        """
        pass

    @abstractmethod
    async def increment(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        """
        Atomically add amount to a counter, creating it (with the effective TTL) at 0.

        Returns:
            The new counter value
        """
        pass

    @abstractmethod
    async def decrement(self, key: str, amount: int = 1, options: CacheOptions | None = None) -> int:
        pass

    @abstractmethod
    async def flush_namespace(self, namespace: str | None = None) -> int:
        """
        Delete every value key and hash record of one namespace.

        Returns:
            Number of physical keys removed
        """
        pass

    @abstractmethod
    async def flush_by_tags(self, tags: Sequence[str]) -> int:
        """
        Delete every key indexed under any of the tags, plus the tag indices.

        Returns:
            Number of value keys removed
        """
        pass

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """
        Get backend statistics.

        Returns:
            Dictionary with backend statistics (hits, misses, size, etc.)
        """
        pass

    @abstractmethod
    async def get_keys_by_namespace(self, namespace: str | None = None, pattern: str = "*") -> list[str]:
        """Physical value keys of one namespace whose logical key matches pattern."""
        pass

    @abstractmethod
    async def get_keys_by_tags(self, tags: Sequence[str]) -> list[str]:
        """Physical value keys indexed under any of the tags (live keys only)."""
        pass

    def pipeline(self, key_transform: Callable[[str], str] | None = None) -> "CachePipeline":
        """
        Start a pipeline of queued operations.

        Args:
            key_transform: Applied to every queued key (e.g. a normalizer)
        """
        from .pipeline import CachePipeline

        return CachePipeline(self, key_transform=key_transform)

    @abstractmethod
    async def transaction(self, operations: "Sequence[PipelineOp]") -> list[Any]:
        """
        Run operations as one unit.

        Returns:
            One result per operation, in order

        Raises:
            The first failure; see each backend for its rollback guarantees
        """
        pass
