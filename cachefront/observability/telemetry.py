"""
cachefront - Telemetry Sinks

The cache manager only depends on the ``Telemetry`` contract:

    histogram = telemetry.create_histogram(name, unit, description, buckets)
    histogram.record(value, {"operation": "get", "adapter": "redis"})

Bundled sinks:
- NoOpTelemetry: discards everything (default)
- PrometheusTelemetry: prometheus_client histograms with explicit buckets
- SQLiteTelemetry: samples persisted to SQLite through SQLAlchemy (fire and forget)
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from prometheus_client import REGISTRY, CollectorRegistry
from prometheus_client import Histogram as PrometheusHistogram
from .database import MetricsDatabase

logger = logging.getLogger(__name__)

_UNIT_SUFFIXES = {"s": "seconds", "ms": "milliseconds", "By": "bytes"}


class Histogram(ABC):
    """A distribution of recorded values."""

    @abstractmethod
    def record(self, value: float, attributes: dict[str, Any] | None = None) -> None:
        """
        Record one value.

        Args:
            value: Observed value (in the histogram's unit)
            attributes: Flat mapping of attribute name to scalar
        """
        pass


class Telemetry(ABC):
    """Factory of instruments."""

    @abstractmethod
    def create_histogram(
        self,
        name: str,
        unit: str,
        description: str | None = None,
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        """
        Create (or return the existing) histogram with this name.

        Args:
            name: Instrument name, e.g. "cache.operation.duration"
            unit: Unit symbol, e.g. "s"
            description: Human-readable description
            buckets: Explicit bucket boundaries
        """
        pass


class NoOpHistogram(Histogram):
    def record(self, value: float, attributes: dict[str, Any] | None = None) -> None:
        pass


class NoOpTelemetry(Telemetry):
    """Telemetry sink that discards every sample."""

    def create_histogram(
        self,
        name: str,
        unit: str,
        description: str | None = None,
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        return NoOpHistogram()


class _PrometheusHistogramAdapter(Histogram):
    def __init__(self, histogram: PrometheusHistogram, label_names: tuple[str, ...]):
        self._histogram = histogram
        self._label_names = label_names

    def record(self, value: float, attributes: dict[str, Any] | None = None) -> None:
        attributes = attributes or {}
        labels = {name: str(attributes.get(name, "")) for name in self._label_names}
        self._histogram.labels(**labels).observe(value)


class PrometheusTelemetry(Telemetry):
    """
    Telemetry sink backed by prometheus_client.

    Instrument names are converted to Prometheus conventions:
    "cache.operation.duration" with unit "s" becomes "cache_operation_duration_seconds".
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        label_names: Sequence[str] = ("operation", "adapter"),
    ):
        """
        Args:
            registry: Collector registry to register histograms in (default: global REGISTRY)
            label_names: Attribute names exported as labels; other attributes are dropped
        """
        self.registry = registry if registry is not None else REGISTRY
        self.label_names = tuple(label_names)
        self._histograms: dict[str, _PrometheusHistogramAdapter] = {}

    @staticmethod
    def metric_name(name: str, unit: str) -> str:
        """Convert an instrument name and unit to a Prometheus metric name."""
        metric = re.sub(r"[^a-zA-Z0-9_:]", "_", name)
        suffix = _UNIT_SUFFIXES.get(unit, unit)
        if suffix and not metric.endswith(f"_{suffix}"):
            metric = f"{metric}_{suffix}"
        return metric

    def create_histogram(
        self,
        name: str,
        unit: str,
        description: str | None = None,
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        metric = self.metric_name(name, unit)
        if metric in self._histograms:
            return self._histograms[metric]

        kwargs: dict[str, Any] = {"registry": self.registry}
        if buckets:
            kwargs["buckets"] = tuple(buckets)

        histogram = PrometheusHistogram(metric, description or name, self.label_names, **kwargs)
        adapter = _PrometheusHistogramAdapter(histogram, self.label_names)
        self._histograms[metric] = adapter

        logger.debug(f"Registered Prometheus histogram {metric}", extra={"metric": metric})
        return adapter


class _SQLiteHistogram(Histogram):
    def __init__(self, sink: "SQLiteTelemetry", name: str, unit: str):
        self._sink = sink
        self.name = name
        self.unit = unit

    def record(self, value: float, attributes: dict[str, Any] | None = None) -> None:
        self._sink._submit(self.name, self.unit, value, attributes or {})


class SQLiteTelemetry(Telemetry):
    """
    Telemetry sink persisting every sample to SQLite.

    ``record()`` never blocks the caller: samples are written by background tasks
    on the running event loop. Samples recorded outside an event loop are dropped.
    """

    def __init__(self, metrics_db_path: str = "./data/metrics.db"):
        self._db = MetricsDatabase(db_path=metrics_db_path)
        self._pending: set[asyncio.Task[None]] = set()

    def create_histogram(
        self,
        name: str,
        unit: str,
        description: str | None = None,
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        return _SQLiteHistogram(self, name, unit)

    def _submit(self, name: str, unit: str, value: float, attributes: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, dropping sample for {name}")
            return

        task = loop.create_task(self._store_sample(name, unit, value, attributes, time.time()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store_sample(
        self,
        name: str,
        unit: str,
        value: float,
        attributes: dict[str, Any],
        timestamp: float,
    ) -> None:
        """Store one sample (errors are logged, never raised)."""
        try:
            await self._db.add_sample(name, unit, value, attributes, timestamp)
        except Exception as e:
            logger.error(f"Failed to store metric {name}: {e}", extra={"metric": name, "error": str(e)})

    async def flush(self) -> None:
        """Wait for every pending sample write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def get_metrics(
        self,
        metric_name: str | None = None,
        operation: str | None = None,
        adapter: str | None = None,
        limit: int = 1000,
    ) -> list[dict[str, Any]]:
        """
        Get stored samples, newest first.

        Args:
            metric_name: Optional filter by instrument name
            operation: Optional filter by cache operation
            adapter: Optional filter by backend name
            limit: Maximum number of records to return
        """
        await self.flush()
        return await self._db.get_samples(metric_name, operation, adapter, limit)

    async def summarize(self, metric_name: str) -> list[dict[str, Any]]:
        """Count, mean and max of one instrument per operation and adapter."""
        await self.flush()
        return await self._db.summarize(metric_name)

    async def clear_metrics(self, metric_name: str | None = None) -> int:
        """Delete stored samples. Returns how many were removed."""
        await self.flush()
        return await self._db.clear_samples(metric_name)

    async def close(self) -> None:
        """Flush pending writes and close database connections."""
        await self.flush()
        await self._db.close()
