"""
cachefront - Configuration Loader

Loads and validates configuration from environment variables and .env files.
Provides a singleton configuration instance for the process.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import DEFAULT_HISTOGRAM_BUCKETS, CachefrontConfig

logger = logging.getLogger(__name__)

_config_instance: CachefrontConfig | None = None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_floats(name: str, default: list[float]) -> list[float]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [float(part) for part in raw.split(",") if part.strip()]


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> CachefrontConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated CachefrontConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    if env_file:
        env_path = Path(env_file)
    else:
        env_path = Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    # Auto-detect cache backend: Redis if REDIS_URL is set, else memory
    redis_url = os.getenv("REDIS_URL")
    cache_backend = "redis" if redis_url else "memory"

    try:
        config_dict = {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "cache": {
                "backend": os.getenv("CACHE_BACKEND", cache_backend),
                "ttl_seconds": int(os.getenv("CACHE_TTL_SECONDS", "3600")),
                "max_size": int(os.getenv("CACHE_MAX_SIZE", "1000")),
                "namespace": os.getenv("CACHE_NAMESPACE", "default"),
                "key_prefix": os.getenv("CACHE_KEY_PREFIX", "cache:"),
                "tag_prefix": os.getenv("CACHE_TAG_PREFIX", "tag:"),
                "hash_prefix": os.getenv("CACHE_HASH_PREFIX", "hash:"),
                "enable_compression": _env_bool("CACHE_ENABLE_COMPRESSION", "false"),
                "compression_threshold": int(os.getenv("CACHE_COMPRESSION_THRESHOLD", "1024")),
                "max_key_length": int(os.getenv("CACHE_BACKEND_MAX_KEY_LENGTH", "250")),
                "max_value_size": int(os.getenv("CACHE_BACKEND_MAX_VALUE_SIZE", str(512 * 1024))),
                "redis_url": redis_url,
                "redis_max_connections": int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
                "redis_socket_timeout": int(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
                "memcached_servers": [
                    s.strip() for s in os.getenv("MEMCACHED_SERVERS", "localhost:11211").split(",") if s.strip()
                ],
            },
            "manager": {
                "max_retries": int(os.getenv("CACHE_MAX_RETRIES", "3")),
                "retry_delay": float(os.getenv("CACHE_RETRY_DELAY", "0.1")),
                "retry_max_delay": float(os.getenv("CACHE_RETRY_MAX_DELAY", "5.0")),
                "retry_jitter": float(os.getenv("CACHE_RETRY_JITTER", "0.1")),
                "default_ttl": int(os.getenv("CACHE_DEFAULT_TTL", "3600")),
                "max_key_length": int(os.getenv("CACHE_MAX_KEY_LENGTH", "512")),
                "max_value_size": int(os.getenv("CACHE_MAX_VALUE_SIZE", str(512 * 1024 * 1024))),
                "case_sensitive": _env_bool("CACHE_CASE_SENSITIVE", "false"),
                "default_namespace": os.getenv("CACHE_MANAGER_NAMESPACE") or None,
                "telemetry_threshold": float(os.getenv("CACHE_TELEMETRY_THRESHOLD", "0")),
            },
            "telemetry": {
                "backend": os.getenv("TELEMETRY_BACKEND", "none"),
                "metrics_db_path": os.getenv("METRICS_DB_PATH", "./data/metrics.db"),
                "histogram_buckets": _env_floats("TELEMETRY_HISTOGRAM_BUCKETS", DEFAULT_HISTOGRAM_BUCKETS),
            },
        }
    except ValueError as e:
        logger.error(f"Malformed numeric environment variable: {e}", extra={"error": str(e)})
        raise ConfigurationError(
            f"Malformed environment variable: {e}",
            details={"error": str(e)},
        ) from e

    try:
        _config_instance = CachefrontConfig(**config_dict)  # type: ignore[arg-type]
        logger.info(
            f"Configuration loaded successfully (environment: {_config_instance.environment})",
            extra={"environment": _config_instance.environment, "cache_backend": _config_instance.cache.backend},
        )
        return _config_instance
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(), "config_dict_keys": list(config_dict.keys())},
            exc_info=True,
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors()},
        ) from e


def get_config() -> CachefrontConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current CachefrontConfig instance
    """
    if _config_instance is None:
        return load_config()

    return _config_instance


def reload_config(env_file: str | None = None) -> CachefrontConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded CachefrontConfig instance
    """
    return load_config(env_file=env_file, reload=True)
