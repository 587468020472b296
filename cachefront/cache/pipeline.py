"""
cachefront - Pipeline Builder

Accumulates queued operations and executes them as one batch.

    results = await (
        cache.pipeline()
        .set("a", 1)
        .set("b", 2)
        .get("a")
        .delete("b")
        .execute()
    )
    # [True, True, 1, True]

A failed operation leaves its exception in its result slot; the other
operations still run and report their own results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .interface import CacheOptions, EnhancedCacheAdapter

logger = logging.getLogger(__name__)

PipelineCommand = Literal["set", "get", "delete", "expire"]


@dataclass
class PipelineOp:
    """One queued operation."""

    command: PipelineCommand
    key: str
    value: Any = None
    ttl: int | None = None
    options: CacheOptions | None = None


class CachePipeline:
    """
    Pipeline that runs each queued operation through the adapter in order.

    In-process backends have no round trip to save, so this is their pipeline;
    network backends subclass it and override ``execute``.
    """

    def __init__(
        self,
        adapter: EnhancedCacheAdapter,
        key_transform: Callable[[str], str] | None = None,
    ):
        self._adapter = adapter
        self._key_transform = key_transform
        self._ops: list[PipelineOp] = []

    def _queue(self, op: PipelineOp) -> CachePipeline:
        if self._key_transform is not None:
            op.key = self._key_transform(op.key)
        self._ops.append(op)
        return self

    def set(self, key: str, value: Any, ttl: int | None = None, options: CacheOptions | None = None) -> CachePipeline:
        return self._queue(PipelineOp("set", key, value=value, ttl=ttl, options=options))

    def get(self, key: str, options: CacheOptions | None = None) -> CachePipeline:
        return self._queue(PipelineOp("get", key, options=options))

    def delete(self, key: str, options: CacheOptions | None = None) -> CachePipeline:
        return self._queue(PipelineOp("delete", key, options=options))

    def expire(self, key: str, ttl: int, options: CacheOptions | None = None) -> CachePipeline:
        return self._queue(PipelineOp("expire", key, ttl=ttl, options=options))

    @property
    def operations(self) -> list[PipelineOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def _drain(self) -> list[PipelineOp]:
        ops, self._ops = self._ops, []
        return ops

    async def execute(self) -> list[Any]:
        """
        Run every queued operation and empty the queue.

        Returns:
            One result per operation in submission order; failed slots hold the exception
        """
        results: list[Any] = []
        for op in self._drain():
            try:
                results.append(await self._run(op))
            except Exception as e:
                logger.warning(
                    f"Pipeline {op.command} failed for key '{op.key}': {e}",
                    extra={"command": op.command, "key": op.key, "error": str(e)},
                )
                results.append(e)
        return results

    async def _run(self, op: PipelineOp) -> Any:
        adapter = self._adapter
        if op.command == "set":
            return await adapter.set(op.key, op.value, op.ttl, options=op.options)
        if op.command == "get":
            return await adapter.get(op.key, options=op.options)
        if op.command == "delete":
            return await adapter.delete(op.key, options=op.options)
        if op.command == "expire":
            return await adapter.expire(op.key, op.ttl or 0, options=op.options)
        raise ValueError(f"Unknown pipeline command: {op.command}")
