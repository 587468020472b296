"""
cachefront - Metrics Database Models

SQLAlchemy models for persisted histogram samples.
"""

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Float, Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""

    pass


class MetricRecord(Base):
    """
    One recorded histogram sample.

    The operation and adapter attributes the cache manager sends get their own
    columns for filtering and grouping; the full attribute set is kept as JSON.
    """

    __tablename__ = "metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    value: Mapped[float] = mapped_column(Float, nullable=False)
    operation: Mapped[str | None] = mapped_column(String(64), nullable=True)
    adapter: Mapped[str | None] = mapped_column(String(64), nullable=True)
    attributes: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    timestamp: Mapped[datetime] = mapped_column(nullable=False, index=True, default=lambda: datetime.now(UTC))

    __table_args__ = (
        Index("idx_metric_name_timestamp", "name", "timestamp"),
        Index("idx_metric_name_operation", "name", "operation", "adapter"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "value": self.value,
            "attributes": json.loads(self.attributes) if self.attributes else {},
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_sample(
        cls,
        name: str,
        unit: str,
        value: float,
        attributes: dict[str, Any],
        timestamp: float,
    ) -> "MetricRecord":
        """Create a MetricRecord from a histogram sample."""
        return cls(
            name=name,
            unit=unit,
            value=value,
            operation=attributes.get("operation"),
            adapter=attributes.get("adapter"),
            attributes=json.dumps(attributes, default=str),
            timestamp=datetime.fromtimestamp(timestamp, UTC),
        )
