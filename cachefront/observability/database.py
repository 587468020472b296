"""
cachefront - Metrics Database

SQLite store behind the SQLite telemetry sink. Owns the async engine and the
queries over recorded histogram samples: inserts, filtered reads by
instrument/operation/adapter, per-operation summaries and purges.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .db_models import Base, MetricRecord


class MetricsDatabase:
    """
    Async SQLite store for histogram samples.

    The schema is created on first use; ``close()`` disposes the engine.
    """

    def __init__(self, db_path: str = "./data/metrics.db"):
        """
        Args:
            db_path: Path to SQLite database file (relative or absolute)
        """
        self.db_path = Path(db_path).resolve()
        self.db_url = f"sqlite+aiosqlite:///{self.db_path}"

        self.engine: AsyncEngine = create_async_engine(
            self.db_url,
            echo=False,
            connect_args={"check_same_thread": False},  # Required for SQLite
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the samples table and its parent directory. Idempotent."""
        async with self._initialization_lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if not self._initialized:
            await self.initialize()

        async with self.session_factory() as session:
            yield session

    # ------------ Samples ------------

    async def add_sample(
        self,
        name: str,
        unit: str,
        value: float,
        attributes: dict[str, Any],
        timestamp: float,
    ) -> None:
        async with self.get_session() as session:
            session.add(MetricRecord.from_sample(name, unit, value, attributes, timestamp))
            await session.commit()

    async def get_samples(
        self,
        name: str | None = None,
        operation: str | None = None,
        adapter: str | None = None,
        limit: int = 1000,
    ) -> list[dict[str, Any]]:
        """
        Read stored samples, newest first.

        Args:
            name: Instrument name filter
            operation: Cache operation filter (e.g. "get")
            adapter: Backend name filter (e.g. "redis")
            limit: Maximum number of samples to return
        """
        query = select(MetricRecord).order_by(MetricRecord.timestamp.desc(), MetricRecord.id.desc()).limit(limit)
        if name:
            query = query.where(MetricRecord.name == name)
        if operation:
            query = query.where(MetricRecord.operation == operation)
        if adapter:
            query = query.where(MetricRecord.adapter == adapter)

        async with self.get_session() as session:
            result = await session.execute(query)
            return [record.to_dict() for record in result.scalars().all()]

    async def summarize(self, name: str) -> list[dict[str, Any]]:
        """
        Aggregate one instrument per (operation, adapter) pair.

        Returns:
            Rows with count, mean and max value, ordered by operation then adapter
        """
        query = (
            select(
                MetricRecord.operation,
                MetricRecord.adapter,
                func.count(MetricRecord.id),
                func.avg(MetricRecord.value),
                func.max(MetricRecord.value),
            )
            .where(MetricRecord.name == name)
            .group_by(MetricRecord.operation, MetricRecord.adapter)
            .order_by(MetricRecord.operation, MetricRecord.adapter)
        )

        async with self.get_session() as session:
            result = await session.execute(query)
            return [
                {"operation": operation, "adapter": adapter, "count": count, "mean": mean, "max": maximum}
                for operation, adapter, count, mean, maximum in result.all()
            ]

    async def clear_samples(self, name: str | None = None) -> int:
        """Delete samples (all, or one instrument's). Returns rows removed."""
        statement = delete(MetricRecord)
        if name:
            statement = statement.where(MetricRecord.name == name)

        async with self.get_session() as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount or 0

    async def close(self) -> None:
        await self.engine.dispose()
        self._initialized = False
