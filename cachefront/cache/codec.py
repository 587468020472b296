"""
cachefront - Value Codec

Serializes values into the stored envelope and back.

Envelope layout (compact JSON):
    {"data": ..., "created_at": <ms>, "expires_at": <ms>, "metadata": {...}, "tags": [...]}

Payloads larger than the compression threshold may be gzip-compressed, base64
encoded and prefixed with ``gz:``. No JSON text starts with ``g``, so the marker
can never be mistaken for an uncompressed payload.
"""

import base64
import gzip
import json
import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Any

from ..errors import SerializationError, ValueTooLargeError

logger = logging.getLogger(__name__)

COMPRESSION_MARKER = "gz:"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """
    The unit of storage: a value plus its bookkeeping.

    ``is_envelope`` is False for bare values (counters, values written by other
    clients), which carry no logical expiry of their own.
    """

    data: Any
    created_at: int = field(default_factory=now_ms)
    expires_at: int | None = None
    metadata: dict[str, Any] | None = None
    tags: list[str] = field(default_factory=list)
    is_envelope: bool = True

    def is_expired(self, now: int | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else now_ms()) >= self.expires_at

    def remaining_ttl(self, now: int | None = None) -> int | None:
        """Seconds until expiry (rounded up), or None when the entry never expires."""
        if self.expires_at is None:
            return None
        remaining = self.expires_at - (now if now is not None else now_ms())
        return max(0, math.ceil(remaining / 1000))

    def with_ttl(self, ttl: int | None, now: int | None = None) -> "CacheEntry":
        """Copy of this entry expiring ``ttl`` seconds from now (None or 0 = never)."""
        if not ttl or ttl <= 0:
            return replace(self, expires_at=None)
        return replace(self, expires_at=(now if now is not None else now_ms()) + ttl * 1000)

    def to_dict(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {"data": self.data, "created_at": self.created_at}
        if self.expires_at is not None:
            envelope["expires_at"] = self.expires_at
        if self.metadata:
            envelope["metadata"] = self.metadata
        if self.tags:
            envelope["tags"] = self.tags
        return envelope


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(
            f"Value is not JSON-serializable: {e}",
            {"value_type": type(value).__name__},
        ) from e


def find_cycle(value: Any) -> bool:
    """
    Return True when a container reachable from value contains itself.

    Only dicts, lists, tuples and sets are traversed. Shared (non-cyclic)
    references are allowed.
    """

    def _visit(node: Any, ancestors: set[int]) -> bool:
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, (list, tuple, set, frozenset)):
            children = node
        else:
            return False

        node_id = id(node)
        if node_id in ancestors:
            return True

        ancestors.add(node_id)
        try:
            return any(_visit(child, ancestors) for child in children)
        finally:
            ancestors.discard(node_id)

    try:
        return _visit(value, set())
    except RecursionError:
        # Nesting too deep to scan is rejected by json.dumps anyway
        return False


def validate_value(value: Any, max_value_size: int) -> int:
    """
    Check that value can be cached.

    Args:
        value: Value to check
        max_value_size: Maximum serialized size in bytes

    Returns:
        Serialized size in bytes

    Raises:
        SerializationError: If value is None, cyclic, or not JSON-serializable
        ValueTooLargeError: If the serialized value exceeds max_value_size
    """
    if value is None:
        raise SerializationError("Cannot cache None: it is indistinguishable from a miss")

    if find_cycle(value):
        raise SerializationError(
            "Value contains a circular reference",
            {"value_type": type(value).__name__},
        )

    size = len(_dumps(value).encode("utf-8"))
    if size > max_value_size:
        raise ValueTooLargeError(size, max_value_size)
    return size


class ValueCodec:
    """
    Encodes values into envelopes and decodes stored payloads.

    Compression is applied only when enabled on the codec, not disabled for the
    call, and the serialized payload is longer than ``compression_threshold``.
    The size limit applies to the serialized payload before compression.
    """

    def __init__(
        self,
        enable_compression: bool = False,
        compression_threshold: int = 1024,
        max_value_size: int = 512 * 1024,
    ):
        self.enable_compression = enable_compression
        self.compression_threshold = compression_threshold
        self.max_value_size = max_value_size

    def encode(
        self,
        value: Any,
        *,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
        tags: list[str] | None = None,
        compress: bool | None = None,
    ) -> str:
        """
        Wrap value in a new envelope and serialize it.

        Args:
            value: JSON-serializable value
            ttl: Seconds until logical expiry (None or 0 = never)
            metadata: Flat mapping stored beside the value
            tags: Tags the entry is written with
            compress: Per-call override (False opts out even when enabled)

        Raises:
            SerializationError: If value cannot be serialized
            ValueTooLargeError: If the payload exceeds max_value_size
        """
        entry = CacheEntry(data=value, metadata=metadata, tags=list(tags or []))
        return self.encode_entry(entry.with_ttl(ttl, now=entry.created_at), compress=compress)

    def encode_entry(self, entry: CacheEntry, compress: bool | None = None) -> str:
        """Serialize an existing entry (bare entries stay bare)."""
        if not entry.is_envelope:
            return self.encode_raw(entry.data)

        payload = _dumps(entry.to_dict())
        self._check_size(payload)

        if self._should_compress(payload, compress):
            return self.compress(payload)
        return payload

    def encode_raw(self, value: Any) -> str:
        """Serialize a value without an envelope (used for counters)."""
        payload = _dumps(value)
        self._check_size(payload)
        return payload

    def decode(self, payload: str | bytes | None) -> CacheEntry | None:
        """
        Decode a stored payload.

        Returns:
            The entry, or None for missing and undecodable payloads
        """
        if payload is None:
            return None

        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            if payload.startswith(COMPRESSION_MARKER):
                payload = self.decompress(payload)
            decoded = json.loads(payload)
        except (ValueError, OSError, EOFError) as e:
            logger.warning(
                f"Discarding undecodable cache payload: {e}",
                extra={"payload_preview": str(payload)[:100], "error": str(e)},
            )
            return None

        if isinstance(decoded, dict) and "data" in decoded and "created_at" in decoded:
            return CacheEntry(
                data=decoded["data"],
                created_at=decoded["created_at"],
                expires_at=decoded.get("expires_at"),
                metadata=decoded.get("metadata"),
                tags=decoded.get("tags") or [],
            )

        return CacheEntry(data=decoded, is_envelope=False)

    @staticmethod
    def compress(payload: str) -> str:
        compressed = gzip.compress(payload.encode("utf-8"))
        return COMPRESSION_MARKER + base64.b64encode(compressed).decode("ascii")

    @staticmethod
    def decompress(payload: str) -> str:
        """
        Reverse ``compress``.

        Raises:
            ValueError: If the payload is not valid base64
            OSError: If the decoded bytes are not gzip data
        """
        raw = base64.b64decode(payload[len(COMPRESSION_MARKER) :], validate=True)
        return gzip.decompress(raw).decode("utf-8")

    def _should_compress(self, payload: str, compress: bool | None) -> bool:
        if not self.enable_compression or compress is False:
            return False
        return len(payload) > self.compression_threshold

    def _check_size(self, payload: str) -> None:
        size = len(payload.encode("utf-8"))
        if size > self.max_value_size:
            raise ValueTooLargeError(size, self.max_value_size)
