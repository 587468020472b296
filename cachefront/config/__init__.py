"""
cachefront - Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config
from .schemas import (
    CacheBackend,
    CacheConfig,
    CachefrontConfig,
    Environment,
    LogLevel,
    ManagerConfig,
    TelemetryBackend,
    TelemetryConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    # Main config
    "CachefrontConfig",
    # Enums
    "Environment",
    "CacheBackend",
    "TelemetryBackend",
    "LogLevel",
    # Config sections
    "CacheConfig",
    "ManagerConfig",
    "TelemetryConfig",
]
