"""
cachefront - Observability Module

Structured logging and the telemetry sinks consumed by the cache manager.

Usage:
    from cachefront.observability import PrometheusTelemetry, setup_logging

    setup_logging("INFO")
    manager.set_telemetry(PrometheusTelemetry())
"""

from .structured_logging import JSONFormatter, setup_logging
from .telemetry import (
    Histogram,
    NoOpTelemetry,
    PrometheusTelemetry,
    SQLiteTelemetry,
    Telemetry,
)

__all__ = [
    "JSONFormatter",
    "setup_logging",
    "Histogram",
    "Telemetry",
    "NoOpTelemetry",
    "PrometheusTelemetry",
    "SQLiteTelemetry",
]
