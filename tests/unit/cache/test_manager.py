"""
cachefront - Cache Manager Tests

Covers key normalization, value validation, retries, stats, events and
telemetry on the basic manager, plus the namespace/tag/counter surface of the
enhanced manager. Backend behavior itself is covered by the backend suites.
"""

import asyncio
from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock

import pytest

from cachefront.cache.backends.memory import MemoryCacheBackend
from cachefront.cache.codec import CacheEntry
from cachefront.cache.interface import CacheAdapter, CacheOptions
from cachefront.cache.manager import CacheManager, EnhancedCacheManager
from cachefront.cache.pipeline import PipelineOp
from cachefront.config import ManagerConfig
from cachefront.config.schemas import DEFAULT_HISTOGRAM_BUCKETS
from cachefront.errors import (
    CacheConnectionError,
    CacheOperationError,
    CapabilityError,
    InvalidNamespaceError,
    KeyTooLongError,
    SerializationError,
    ValidationError,
    ValueTooLargeError,
)
from cachefront.observability.telemetry import Histogram, Telemetry


class DictAdapter(CacheAdapter):
    """Basic adapter without a native TTL rewrite."""

    name = "dict"

    def __init__(self) -> None:
        self.data: dict[tuple[str, str], Any] = {}
        self.ttls: dict[tuple[str, str], int | None] = {}

    async def get(self, key: str, hash: str = "") -> Any | None:
        return self.data.get((key, hash))

    async def get_entry(self, key: str, hash: str = "") -> CacheEntry | None:
        if (key, hash) not in self.data:
            return None
        return CacheEntry(data=self.data[(key, hash)], created_at=0)

    async def set(self, key: str, value: Any, ttl: int | None = None, hash: str = "") -> bool:
        self.data[(key, hash)] = value
        self.ttls[(key, hash)] = ttl
        return True

    async def mget(self, keys: Sequence[str], hash: str = "") -> list[Any | None]:
        return [self.data.get((key, hash)) for key in keys]

    async def mset(self, entries: dict[str, Any], hash: str = "", ttl: int | None = None) -> bool:
        for key, value in entries.items():
            await self.set(key, value, ttl, hash)
        return True

    async def delete(self, key: str, hash: str = "") -> bool:
        self.ttls.pop((key, hash), None)
        return self.data.pop((key, hash), None) is not None

    async def delete_many(self, keys: Sequence[str], hash: str = "") -> bool:
        results = [await self.delete(key, hash) for key in keys]
        return any(results)

    async def keys(self, pattern: str = "*", hash: str = "") -> list[str]:
        return [key for key, field in self.data if field == hash]

    async def clear(self, hash: str = "") -> bool:
        self.data.clear()
        return True

    async def is_alive(self) -> bool:
        return True

    async def size(self) -> int:
        return len(self.data)

    async def hash_fields(self, key: str) -> list[str]:
        return [field for stored, field in self.data if stored == key and field]

    async def close(self) -> None:
        pass


class RecordingHistogram(Histogram):
    def __init__(self) -> None:
        self.samples: list[tuple[float, dict[str, Any]]] = []

    def record(self, value: float, attributes: dict[str, Any] | None = None) -> None:
        self.samples.append((value, attributes or {}))


class RecordingTelemetry(Telemetry):
    def __init__(self) -> None:
        self.histogram = RecordingHistogram()
        self.created: list[tuple[str, str, list[float] | None]] = []

    def create_histogram(
        self,
        name: str,
        unit: str,
        description: str | None = None,
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        self.created.append((name, unit, list(buckets) if buckets is not None else None))
        return self.histogram


class TestCacheManager:
    """Test suite for CacheManager over a memory backend."""

    async def test_set_and_get_round_trip(self, manager: CacheManager, sample_cache_data: dict[str, Any]) -> None:
        for key, value in sample_cache_data.items():
            assert await manager.set(key, value) is True

        for key, value in sample_cache_data.items():
            assert await manager.get(key) == value

    async def test_keys_are_case_folded_by_default(self, manager: CacheManager) -> None:
        await manager.set("User:1", {"name": "John"})

        assert manager.case_sensitive is False
        assert await manager.get("user:1") == {"name": "John"}
        assert await manager.get("USER:1") == {"name": "John"}

    async def test_case_sensitive_configuration(self, memory_backend: MemoryCacheBackend) -> None:
        manager = CacheManager(memory_backend, ManagerConfig(case_sensitive=True))
        await manager.set("User:1", "upper")
        await manager.set("user:1", "lower")

        assert await manager.get("User:1") == "upper"
        assert await manager.get("user:1") == "lower"

    async def test_case_sensitivity_is_per_instance(self, memory_backend: MemoryCacheBackend) -> None:
        folding = CacheManager(memory_backend)
        exact = CacheManager(memory_backend)
        exact.set_case_sensitivity(True)

        await folding.set("Key", "value")

        assert folding.case_sensitive is False
        assert await folding.get("KEY") == "value"
        assert await exact.get("Key") is None
        assert await exact.get("key") == "value"

    async def test_get_missing_returns_none(self, manager: CacheManager) -> None:
        assert await manager.get("missing") is None

    async def test_ttl_expiry(self, manager: CacheManager) -> None:
        await manager.set("user:1", {"name": "John"}, ttl=1)
        assert await manager.get("user:1") == {"name": "John"}

        await asyncio.sleep(1.1)
        assert await manager.get("user:1") is None

    async def test_default_ttl_from_config(self, memory_backend: MemoryCacheBackend) -> None:
        manager = EnhancedCacheManager(memory_backend, ManagerConfig(default_ttl=120))
        await manager.set("key", "value")

        assert 118 <= await manager.ttl("key") <= 120

    async def test_ttl_zero_never_expires(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("key", "value", ttl=0)

        assert await enhanced_manager.ttl("key") == -1

    async def test_empty_key_is_rejected(self, manager: CacheManager) -> None:
        with pytest.raises(ValidationError):
            await manager.set("", "value")

        with pytest.raises(ValidationError):
            await manager.get("")

    async def test_key_too_long(self, memory_backend: MemoryCacheBackend) -> None:
        manager = CacheManager(memory_backend, ManagerConfig(max_key_length=10))

        with pytest.raises(KeyTooLongError):
            await manager.set("k" * 11, "value")

    async def test_none_value_is_rejected(self, manager: CacheManager) -> None:
        with pytest.raises(SerializationError):
            await manager.set("key", None)

        assert await manager.get("key") is None

    async def test_circular_value_is_rejected_and_prior_value_kept(self, manager: CacheManager) -> None:
        await manager.set("key", {"version": 1})
        circular: dict[str, Any] = {"name": "loop"}
        circular["self"] = circular

        with pytest.raises(SerializationError):
            await manager.set("key", circular)

        assert await manager.get("key") == {"version": 1}

    async def test_oversized_value_is_rejected(self, memory_backend: MemoryCacheBackend) -> None:
        manager = CacheManager(memory_backend, ManagerConfig(max_value_size=10))

        with pytest.raises(ValueTooLargeError):
            await manager.set("key", "x" * 100)

    async def test_mget_keeps_order_and_length(self, manager: CacheManager) -> None:
        await manager.mset({"a": 1, "c": 3})

        assert await manager.mget(["a", "b", "c"]) == [1, None, 3]
        assert await manager.mget([]) == []

    async def test_mset_writes_nothing_when_one_value_is_invalid(self, manager: CacheManager) -> None:
        with pytest.raises(SerializationError):
            await manager.mset({"a": 1, "b": None, "c": 3})

        assert await manager.mget(["a", "b", "c"]) == [None, None, None]

    async def test_empty_mset(self, manager: CacheManager) -> None:
        assert await manager.mset({}) is True

    async def test_delete_is_idempotent(self, manager: CacheManager) -> None:
        await manager.set("key", "value")

        assert await manager.delete("key") is True
        assert await manager.delete("key") is False
        assert await manager.get("key") is None

    async def test_delete_many(self, manager: CacheManager) -> None:
        await manager.mset({"a": 1, "b": 2})

        assert await manager.delete_many(["a", "b", "missing"]) is True
        assert await manager.delete_many(["a"]) is False
        assert await manager.delete_many([]) is False

    async def test_keys_and_clear(self, manager: CacheManager) -> None:
        await manager.mset({"user:1": 1, "user:2": 2, "post:1": 3})

        assert sorted(await manager.keys("USER:*")) == ["user:1", "user:2"]
        assert await manager.size() == 3

        assert await manager.clear() is True
        assert await manager.size() == 0

    async def test_ping(self, manager: CacheManager) -> None:
        assert await manager.ping() is True

    async def test_extend_ttl(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("key", "value", ttl=10)

        assert await enhanced_manager.extend_ttl("key", 300) is True
        assert await enhanced_manager.ttl("key") > 10
        assert await enhanced_manager.extend_ttl("missing", 300) is False

    async def test_extend_ttl_falls_back_to_rewrite(self, fast_retry_config: ManagerConfig) -> None:
        adapter = DictAdapter()
        manager = CacheManager(adapter, fast_retry_config)
        await manager.set("key", "value", ttl=10)

        assert await manager.extend_ttl("key", 300) is True
        assert adapter.ttls[("key", "")] == 300
        assert await manager.get("key") == "value"
        assert await manager.extend_ttl("missing", 300) is False

    async def test_hash_fields(self, manager: CacheManager) -> None:
        await manager.set("page", "one", hash="V1")

        assert await manager.get("page") is None
        assert await manager.get("page", hash="v1") == "one"
        assert await manager.delete("page", hash="v1") is True


class TestCacheManagerStats:
    """Stats counters and live key count."""

    async def test_hits_misses_and_sets(self, manager: CacheManager) -> None:
        await manager.set("a", 1)
        await manager.get("a")
        await manager.get("a")
        await manager.get("missing")

        stats = await manager.get_stats()
        assert stats.sets == 1
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == 66.67
        assert stats.key_count == 1

    async def test_mget_counts_each_key(self, manager: CacheManager) -> None:
        await manager.set("a", 1)
        await manager.mget(["a", "b"])

        stats = await manager.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1

    async def test_deletes_and_errors(self, manager: CacheManager) -> None:
        await manager.set("a", 1)
        await manager.delete("a")
        await manager.delete("a")
        with pytest.raises(ValidationError):
            await manager.get("")

        stats = await manager.get_stats()
        assert stats.deletes == 1
        assert stats.errors == 1

    async def test_get_stats_returns_snapshot(self, manager: CacheManager) -> None:
        snapshot = await manager.get_stats()
        await manager.set("a", 1)

        assert snapshot.sets == 0
        assert (await manager.get_stats()).sets == 1

    async def test_reset_stats(self, manager: CacheManager) -> None:
        await manager.set("a", 1)
        manager.reset_stats()

        stats = await manager.get_stats()
        assert stats.sets == 0
        assert stats.key_count == 1


class TestCacheManagerEvents:
    """Listener registration and dispatch."""

    async def test_events_are_emitted(self, manager: CacheManager) -> None:
        events: list[tuple[Any, ...]] = []
        for event in ("hit", "miss", "set", "delete", "clear"):
            manager.on(event, lambda *args, event=event: events.append((event, *args)))

        await manager.set("Key", "value")
        await manager.get("key")
        await manager.get("missing")
        await manager.delete("key")
        await manager.clear()

        assert events == [
            ("set", "key", "value"),
            ("hit", "key"),
            ("miss", "missing"),
            ("delete", "key"),
            ("clear",),
        ]

    async def test_error_event_receives_exception(self, manager: CacheManager) -> None:
        errors: list[Exception] = []
        manager.on("error", errors.append)

        with pytest.raises(ValidationError):
            await manager.set("", "value")

        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)

    async def test_failing_listener_does_not_break_operation(self, manager: CacheManager) -> None:
        def broken(*args: Any) -> None:
            raise RuntimeError("listener bug")

        manager.on("set", broken)

        assert await manager.set("key", "value") is True
        assert await manager.get("key") == "value"

    async def test_async_listener(self, manager: CacheManager) -> None:
        seen: list[str] = []

        async def listener(key: str, value: Any) -> None:
            await asyncio.sleep(0)
            seen.append(key)

        manager.on("set", listener)
        await manager.set("key", "value")

        # close() waits for pending listeners
        await manager.close()
        assert seen == ["key"]

    async def test_off(self, manager: CacheManager) -> None:
        seen: list[str] = []
        listener = seen.append
        manager.on("miss", listener)
        manager.off("miss", listener)
        manager.off("miss", listener)

        await manager.get("missing")
        assert seen == []

    async def test_delete_many_reports_only_removed_keys(self, manager: CacheManager) -> None:
        deleted: list[str] = []
        manager.on("delete", deleted.append)
        await manager.set("a", 1)

        assert await manager.delete_many(["a", "missing1", "missing2"]) is True

        assert deleted == ["a"]
        assert (await manager.get_stats()).deletes == 1

    async def test_delete_many_on_adapter_without_batch_delete(self, fast_retry_config: ManagerConfig) -> None:
        manager = CacheManager(DictAdapter(), fast_retry_config)
        deleted: list[str] = []
        manager.on("delete", deleted.append)
        await manager.mset({"a": 1, "b": 2})

        assert await manager.delete_many(["missing", "b", "a"]) is True

        assert deleted == ["b", "a"]
        assert (await manager.get_stats()).deletes == 2

    async def test_mdel_reports_only_removed_keys(self, enhanced_manager: EnhancedCacheManager) -> None:
        deleted: list[str] = []
        enhanced_manager.on("delete", deleted.append)
        await enhanced_manager.set("a", 1)

        assert await enhanced_manager.mdel(["a", "missing1", "missing2"]) == 1
        assert await enhanced_manager.mdel(["missing1"]) == 0

        assert deleted == ["a"]
        assert (await enhanced_manager.get_stats()).deletes == 1

    def test_unknown_event(self, manager: CacheManager) -> None:
        with pytest.raises(ValueError, match="Unknown cache event"):
            manager.on("expired", print)  # type: ignore[arg-type]


class TestCacheManagerRetry:
    """Transient failures are retried, everything else is raised at once."""

    async def test_transient_errors_are_retried(
        self, manager: CacheManager, memory_backend: MemoryCacheBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        flaky = AsyncMock(
            side_effect=[
                CacheConnectionError("memory", "get"),
                CacheConnectionError("memory", "get"),
                "value",
            ]
        )
        monkeypatch.setattr(memory_backend, "get", flaky)

        assert await manager.get("key") == "value"
        assert flaky.await_count == 3

        stats = await manager.get_stats()
        assert stats.errors == 0
        assert stats.hits == 1

    async def test_exhausted_retries_raise_once(
        self, manager: CacheManager, memory_backend: MemoryCacheBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        down = AsyncMock(side_effect=ConnectionRefusedError("down"))
        monkeypatch.setattr(memory_backend, "set", down)
        errors: list[Exception] = []
        manager.on("error", errors.append)

        with pytest.raises(ConnectionRefusedError):
            await manager.set("key", "value")

        assert down.await_count == 3
        assert len(errors) == 1
        assert (await manager.get_stats()).errors == 1

    async def test_operation_errors_are_not_retried(
        self, manager: CacheManager, memory_backend: MemoryCacheBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        rejected = AsyncMock(side_effect=CacheOperationError("WRONGTYPE"))
        monkeypatch.setattr(memory_backend, "get", rejected)

        with pytest.raises(CacheOperationError):
            await manager.get("key")

        assert rejected.await_count == 1

    async def test_programming_errors_are_not_retried(
        self, manager: CacheManager, memory_backend: MemoryCacheBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        errors: list[Exception] = []
        manager.on("error", errors.append)
        buggy = AsyncMock(side_effect=TypeError("unexpected keyword argument"))
        monkeypatch.setattr(memory_backend, "get", buggy)

        with pytest.raises(TypeError):
            await manager.get("key")

        assert buggy.await_count == 1
        assert len(errors) == 1


class TestCacheManagerTelemetry:
    """Operation durations are recorded in the histogram."""

    async def test_durations_are_recorded(self, memory_backend: MemoryCacheBackend) -> None:
        telemetry = RecordingTelemetry()
        manager = CacheManager(memory_backend, telemetry=telemetry)

        await manager.set("key", "value")
        await manager.get("key")

        assert telemetry.created == [("cache.operation.duration", "s", list(DEFAULT_HISTOGRAM_BUCKETS))]
        operations = [attributes["operation"] for _, attributes in telemetry.histogram.samples]
        assert operations == ["set", "get"]
        assert all(attributes["adapter"] == "memory" for _, attributes in telemetry.histogram.samples)
        assert all(value >= 0 for value, _ in telemetry.histogram.samples)

    async def test_failed_operations_are_recorded(self, memory_backend: MemoryCacheBackend) -> None:
        telemetry = RecordingTelemetry()
        manager = CacheManager(memory_backend, telemetry=telemetry)

        with pytest.raises(ValidationError):
            await manager.get("")

        assert [attributes["operation"] for _, attributes in telemetry.histogram.samples] == ["get"]

    async def test_threshold_filters_fast_operations(self, memory_backend: MemoryCacheBackend) -> None:
        telemetry = RecordingTelemetry()
        manager = CacheManager(memory_backend, ManagerConfig(telemetry_threshold=60.0), telemetry=telemetry)

        await manager.set("key", "value")

        assert telemetry.histogram.samples == []

    async def test_custom_buckets(self, memory_backend: MemoryCacheBackend) -> None:
        telemetry = RecordingTelemetry()
        manager = CacheManager(memory_backend)
        manager.set_telemetry(telemetry, [0.1, 1.0])

        await manager.ping()

        assert telemetry.created == [("cache.operation.duration", "s", [0.1, 1.0])]
        assert len(telemetry.histogram.samples) == 1


class TestLegacyApi:
    """Legacy calls report failures with sentinels instead of exceptions."""

    async def test_save_load_list_purge(self, manager: CacheManager) -> None:
        assert await manager.save("report", [1, 2], "2024") is True

        assert await manager.load("report", 60, "2024") == [1, 2]
        assert await manager.load("report", 0, "2024") is False
        assert await manager.list("report") == ["2024"]

        assert await manager.purge("report", "2024") is True
        assert await manager.load("report", 60, "2024") is False

    async def test_load_without_hash(self, manager: CacheManager) -> None:
        await manager.save("plain", "value")

        assert await manager.load("plain", 60) == "value"
        assert await manager.load("missing", 60) is False

    async def test_flush_and_get_size(self, manager: CacheManager) -> None:
        await manager.save("a", 1)
        assert await manager.get_size() == 1

        assert await manager.flush() is True
        assert await manager.get_size() == 0

    async def test_save_rejects_invalid_values(self, manager: CacheManager) -> None:
        with pytest.raises(SerializationError):
            await manager.save("key", None)

    async def test_failures_become_sentinels(
        self, manager: CacheManager, memory_backend: MemoryCacheBackend, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        broken = AsyncMock(side_effect=CacheOperationError("boom"))
        for name in ("load", "save", "list", "purge", "flush", "get_size"):
            monkeypatch.setattr(memory_backend, name, broken)

        assert await manager.load("key", 60) is False
        assert await manager.save("key", "value") is False
        assert await manager.list("key") == []
        assert await manager.purge("key") is False
        assert await manager.flush() is False
        assert await manager.get_size() == 0

        stats = await manager.get_stats()
        assert stats.errors == 6
        assert stats.key_count == 0


class TestEnhancedCacheManager:
    """Test suite for EnhancedCacheManager."""

    def test_requires_enhanced_adapter(self) -> None:
        with pytest.raises(CapabilityError):
            EnhancedCacheManager(DictAdapter())  # type: ignore[arg-type]

    def test_default_namespace_comes_from_adapter(self, enhanced_manager: EnhancedCacheManager) -> None:
        assert enhanced_manager.get_default_namespace() == "test"

    def test_configured_namespace_is_applied_to_adapter(self, memory_backend: MemoryCacheBackend) -> None:
        manager = EnhancedCacheManager(memory_backend, ManagerConfig(default_namespace="app"))

        assert manager.get_default_namespace() == "app"
        assert memory_backend.get_namespace() == "app"

    async def test_set_default_namespace(
        self, enhanced_manager: EnhancedCacheManager, memory_backend: MemoryCacheBackend
    ) -> None:
        await enhanced_manager.set("key", "in-test")
        enhanced_manager.set_default_namespace("other")
        await enhanced_manager.set("key", "in-other")

        assert enhanced_manager.get_default_namespace() == "other"
        assert await enhanced_manager.get("key") == "in-other"
        assert await enhanced_manager.get("key", options=CacheOptions(namespace="test")) == "in-test"
        assert await memory_backend.get("key") == "in-other"

    def test_invalid_namespace(self, enhanced_manager: EnhancedCacheManager) -> None:
        with pytest.raises(InvalidNamespaceError):
            enhanced_manager.set_default_namespace("a::b")

        with pytest.raises(InvalidNamespaceError):
            enhanced_manager.set_default_namespace("")

        assert enhanced_manager.get_default_namespace() == "test"

    async def test_options_ttl_and_explicit_ttl(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("a", 1, options=CacheOptions(ttl=50))
        await enhanced_manager.set("b", 1, ttl=500, options=CacheOptions(ttl=50))

        assert 48 <= await enhanced_manager.ttl("a") <= 50
        assert 498 <= await enhanced_manager.ttl("b") <= 500

    async def test_include_metadata(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("key", "value", options=CacheOptions(metadata={"source": "db"}, tags=["Users"]))

        entry = await enhanced_manager.get("key", options=CacheOptions(include_metadata=True))

        assert isinstance(entry, CacheEntry)
        assert entry.data == "value"
        assert entry.metadata == {"source": "db"}
        assert entry.tags == ["users"]
        assert (await enhanced_manager.get_stats()).hits == 1

    async def test_flush_by_tags(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.mset({"a": 1, "b": 2}, options=CacheOptions(tags=["grp"]))
        await enhanced_manager.set("c", 3, options=CacheOptions(tags=["other"]))
        await enhanced_manager.set("d", 4)

        assert await enhanced_manager.flush_by_tags(["GRP"]) == 2

        assert await enhanced_manager.mget(["a", "b", "c", "d"]) == [None, None, 3, 4]
        assert (await enhanced_manager.get_stats()).deletes == 2
        assert await enhanced_manager.flush_by_tags([]) == 0

    async def test_get_keys_by_tags(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("a", 1, options=CacheOptions(tags=["grp"]))

        assert await enhanced_manager.get_keys_by_tags(["Grp"]) == ["cache:test::a"]
        assert await enhanced_manager.get_keys_by_tags([]) == []

    async def test_flush_namespace(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("a", 1)
        await enhanced_manager.set("a", 2, options=CacheOptions(namespace="other"))

        assert await enhanced_manager.flush_namespace("other") == 1

        assert await enhanced_manager.get("a") == 1
        assert await enhanced_manager.get("a", options=CacheOptions(namespace="other")) is None

        assert await enhanced_manager.flush_namespace() == 1
        assert await enhanced_manager.get("a") is None

    async def test_get_keys_by_namespace(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.mset({"user:1": 1, "post:1": 2})

        assert await enhanced_manager.get_keys_by_namespace(pattern="USER:*") == ["cache:test::user:1"]

    async def test_increment_and_decrement(self, enhanced_manager: EnhancedCacheManager) -> None:
        assert await enhanced_manager.increment("counter", 5) == 5
        assert await enhanced_manager.decrement("counter", 2) == 3
        assert await enhanced_manager.get("counter") == 3

    async def test_new_counter_gets_default_ttl(self, memory_backend: MemoryCacheBackend) -> None:
        manager = EnhancedCacheManager(memory_backend, ManagerConfig(default_ttl=120))
        await manager.increment("counter")

        assert 118 <= await manager.ttl("counter") <= 120

    async def test_increment_non_integer(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("name", "Ada")

        with pytest.raises(CacheOperationError):
            await enhanced_manager.increment("name")

    async def test_exists_expire_ttl(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.set("key", "value", ttl=0)

        assert await enhanced_manager.exists("KEY") is True
        assert await enhanced_manager.exists("missing") is False

        assert await enhanced_manager.expire("key", 60) is True
        assert 58 <= await enhanced_manager.ttl("key") <= 60
        assert await enhanced_manager.expire("missing", 60) is False
        assert await enhanced_manager.ttl("missing") == -2

    async def test_mdel(self, enhanced_manager: EnhancedCacheManager) -> None:
        await enhanced_manager.mset({"a": 1, "b": 2})

        assert await enhanced_manager.mdel(["a", "b", "c"]) == 2
        assert await enhanced_manager.mdel([]) == 0
        assert (await enhanced_manager.get_stats()).deletes == 2

    async def test_get_backend_stats(self, enhanced_manager: EnhancedCacheManager) -> None:
        stats = await enhanced_manager.get_backend_stats()

        assert stats["backend"] == "memory"
        assert stats["namespace"] == "test"

    async def test_pipeline_normalizes_keys(self, enhanced_manager: EnhancedCacheManager) -> None:
        results = await enhanced_manager.pipeline().set("A", 1).set("B", 2).get("a").delete("b").execute()

        assert results == [True, True, 1, True]
        assert await enhanced_manager.get("a") == 1

    async def test_pipeline_uses_default_namespace(self, enhanced_manager: EnhancedCacheManager) -> None:
        enhanced_manager.set_default_namespace("other")
        await enhanced_manager.pipeline().set("key", "value").execute()

        assert await enhanced_manager.get("key") == "value"
        assert await enhanced_manager.get("key", options=CacheOptions(namespace="test")) is None

    async def test_transaction(self, enhanced_manager: EnhancedCacheManager) -> None:
        results = await enhanced_manager.transaction(
            [
                PipelineOp("set", "A", value=1),
                PipelineOp("get", "a"),
                PipelineOp("get", "missing"),
                PipelineOp("delete", "a"),
            ]
        )

        assert results == [True, 1, None, True]
        stats = await enhanced_manager.get_stats()
        assert (stats.sets, stats.hits, stats.misses, stats.deletes) == (1, 1, 1, 1)
        assert await enhanced_manager.transaction([]) == []

    async def test_transaction_validates_before_running(self, enhanced_manager: EnhancedCacheManager) -> None:
        with pytest.raises(SerializationError):
            await enhanced_manager.transaction(
                [
                    PipelineOp("set", "a", value=1),
                    PipelineOp("set", "b", value=None),
                ]
            )

        assert await enhanced_manager.get("a") is None

    async def test_transaction_applies_default_ttl(self, memory_backend: MemoryCacheBackend) -> None:
        manager = EnhancedCacheManager(memory_backend, ManagerConfig(default_ttl=120))
        await manager.transaction([PipelineOp("set", "a", value=1)])

        assert 118 <= await manager.ttl("a") <= 120
