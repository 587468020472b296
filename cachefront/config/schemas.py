"""
cachefront - Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated when loaded.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_HISTOGRAM_BUCKETS = [0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class CacheBackend(str, Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    REDIS = "redis"
    MEMCACHED = "memcached"
    NONE = "none"


class TelemetryBackend(str, Enum):
    """Supported telemetry sinks."""

    NONE = "none"
    PROMETHEUS = "prometheus"
    SQLITE = "sqlite"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Backend configuration."""

    backend: CacheBackend = Field(default=CacheBackend.MEMORY, description="Cache backend to use")
    ttl_seconds: int = Field(default=3600, ge=0, description="Default TTL in seconds (0 = no expiry)")
    max_size: int = Field(default=1000, ge=1, description="Max cache entries (memory backend)")
    namespace: str = Field(default="default", description="Default namespace for keys")

    key_prefix: str = Field(default="cache:", description="Prefix of every physical value key")
    tag_prefix: str = Field(default="tag:", description="Prefix of tag index keys")
    hash_prefix: str = Field(default="hash:", description="Prefix of legacy hash records")

    enable_compression: bool = Field(default=False, description="Gzip payloads above the threshold")
    compression_threshold: int = Field(default=1024, ge=0, description="Payload size (bytes) above which to compress")
    max_key_length: int = Field(default=250, ge=1, description="Max raw key length accepted by the backend")
    max_value_size: int = Field(default=512 * 1024, ge=1, description="Max serialized payload size in bytes")

    # Redis-specific settings (only used when backend=redis)
    redis_url: str | None = Field(default=None, validate_default=True, description="Redis connection URL")
    redis_max_connections: int = Field(default=10, ge=1, description="Redis connection pool size")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    # Memcached-specific settings (only used when backend=memcached)
    memcached_servers: list[str] = Field(
        default_factory=lambda: ["localhost:11211"],
        description="Memcached servers as host:port",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None, info: Any) -> str | None:
        """Ensure redis_url is provided when backend is redis."""
        backend = info.data.get("backend")
        if backend == CacheBackend.REDIS and not v:
            raise ValueError("redis_url is required when cache backend is 'redis'")
        return v

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespaces may not be empty or contain a colon."""
        if not v or ":" in v:
            raise ValueError("namespace must be non-empty and must not contain ':'")
        return v


class ManagerConfig(BaseModel):
    """Cache manager configuration (retries, limits, key policy)."""

    max_retries: int = Field(default=3, ge=1, description="Maximum attempts per backend call")
    retry_delay: float = Field(default=0.1, gt=0, description="Initial backoff delay in seconds (doubled per attempt)")
    retry_max_delay: float = Field(default=5.0, gt=0, description="Backoff delay cap in seconds")
    retry_jitter: float = Field(default=0.1, ge=0, le=1, description="Jitter factor added to each delay")
    default_ttl: int = Field(default=3600, ge=0, description="TTL applied when the caller supplies none")
    max_key_length: int = Field(default=512, ge=1, description="Max raw key length")
    max_value_size: int = Field(default=512 * 1024 * 1024, ge=1, description="Max serialized value size in bytes")
    case_sensitive: bool = Field(default=False, description="Keep key casing instead of folding to lowercase")
    default_namespace: str | None = Field(
        default=None,
        description="Namespace used when a call does not override it (None keeps the adapter namespace)",
    )
    telemetry_threshold: float = Field(
        default=0.0,
        ge=0,
        description="Only durations at or above this many seconds are recorded",
    )

    @field_validator("retry_max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: Any) -> float:
        """Ensure the delay cap is not below the initial delay."""
        base = info.data.get("retry_delay")
        if base is not None and v < base:
            raise ValueError("retry_max_delay must be >= retry_delay")
        return v


class TelemetryConfig(BaseModel):
    """Telemetry sink configuration."""

    backend: TelemetryBackend = Field(default=TelemetryBackend.NONE, description="Telemetry sink")
    metrics_db_path: str = Field(default="./data/metrics.db", description="SQLite path for the sqlite sink")
    histogram_buckets: list[float] = Field(
        default_factory=lambda: list(DEFAULT_HISTOGRAM_BUCKETS),
        description="Explicit histogram bucket boundaries in seconds",
    )

    @field_validator("histogram_buckets")
    @classmethod
    def validate_buckets(cls, v: list[float]) -> list[float]:
        """Bucket boundaries must be strictly increasing."""
        if any(b <= a for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("histogram_buckets must be strictly increasing")
        return v


class CachefrontConfig(BaseModel):
    """Root configuration for cachefront."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
