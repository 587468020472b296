"""
cachefront - Core Error Types

Defines the exception hierarchy for the caching façade.
All exceptions inherit from CachefrontError for consistent error handling.

Taxonomy:
- ValidationError: bad keys, namespaces, or values. Never retried.
- TransientBackendError: network/timeout/connection failures. Retried with backoff.
- ConfigurationError / DependencyError: setup problems surfaced at construction.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for structured error reporting."""

    # Input validation errors
    INVALID_KEY = "INVALID_KEY"
    KEY_TOO_LONG = "KEY_TOO_LONG"
    INVALID_NAMESPACE = "INVALID_NAMESPACE"
    INVALID_VALUE = "INVALID_VALUE"
    VALUE_TOO_LARGE = "VALUE_TOO_LARGE"

    # Backend errors
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    BACKEND_ERROR = "BACKEND_ERROR"

    # Setup errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    CAPABILITY_MISSING = "CAPABILITY_MISSING"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CachefrontError(Exception):
    """Base exception for all cachefront errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CachefrontError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=500)


class ValidationError(CachefrontError):
    """Raised when a key, namespace, or value is rejected before reaching the backend."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=400)


class KeyTooLongError(ValidationError):
    """Raised when a raw key exceeds the configured maximum length."""

    def __init__(self, key: str, max_length: int):
        message = f"Cache key exceeds maximum length of {max_length} characters"
        super().__init__(message, {"key_preview": key[:50], "length": len(key), "max_length": max_length})
        self.max_length = max_length


class InvalidNamespaceError(ValidationError):
    """Raised when a namespace is empty or contains the key separator."""

    def __init__(self, namespace: str, reason: str):
        super().__init__(f"Invalid namespace '{namespace}': {reason}", {"namespace": namespace})


class SerializationError(ValidationError):
    """Raised when a value cannot be represented as JSON (cycles, unsupported types, None)."""

    pass


class ValueTooLargeError(ValidationError):
    """Raised when a serialized value exceeds the configured maximum size."""

    def __init__(self, size: int, max_size: int):
        message = f"Serialized value of {size} bytes exceeds maximum of {max_size} bytes"
        super().__init__(message, {"size": size, "max_size": max_size})
        self.size = size
        self.max_size = max_size


class CacheError(CachefrontError):
    """Base exception for cache backend errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=500)


class TransientBackendError(CacheError):
    """Raised when a backend call fails for a reason worth retrying."""

    def __init__(self, backend: str, operation: str, details: dict[str, Any] | None = None):
        message = f"Cache backend '{backend}' failed during {operation}"
        super().__init__(message, {"backend": backend, "operation": operation, **(details or {})})
        self.backend = backend
        self.operation = operation
        self.status_code = 503


# Historical name kept for callers that catch connection failures explicitly
CacheConnectionError = TransientBackendError


class CacheOperationError(CacheError):
    """Raised when a backend rejects an operation (not retried)."""

    pass


class CapabilityError(ConfigurationError):
    """Raised when a manager is paired with an adapter lacking a required capability."""

    def __init__(self, adapter: str, required: str):
        message = f"Adapter '{adapter}' does not implement the {required} capability"
        super().__init__(message, {"adapter": adapter, "required": required})


class DependencyError(ConfigurationError):
    """Raised when the client library of a selected backend is missing or fails to load."""

    def __init__(
        self,
        package: str,
        feature: str | None = None,
        install_hint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        if feature:
            message = f"Required dependency '{package}' is missing for {feature}"
        else:
            message = f"Required dependency '{package}' is missing"

        if install_hint:
            message += f". Install with: {install_hint}"

        error_details = details or {}
        error_details.update(
            {
                "package": package,
                "feature": feature,
                "install_hint": install_hint,
            }
        )

        super().__init__(message, error_details)


def is_retryable_error(error: BaseException) -> bool:
    """
    Check if an error raised by a backend call should be retried.

    Args:
        error: Exception to check

    Returns:
        True for transient backend failures and connection, timeout or OS errors
        from a backend client; False for everything else, including programming
        errors such as TypeError.
    """
    if isinstance(error, TransientBackendError):
        return True

    if isinstance(error, CachefrontError):
        return False

    # asyncio.TimeoutError is TimeoutError on 3.11+; ConnectionError is an OSError
    return isinstance(error, (TimeoutError, OSError))


def extract_error_code(error: Exception) -> ErrorCode:
    """
    Extract appropriate ErrorCode from an exception.

    Args:
        error: Exception to categorize

    Returns:
        Appropriate ErrorCode for the exception
    """
    if isinstance(error, KeyTooLongError):
        return ErrorCode.KEY_TOO_LONG

    if isinstance(error, InvalidNamespaceError):
        return ErrorCode.INVALID_NAMESPACE

    if isinstance(error, ValueTooLargeError):
        return ErrorCode.VALUE_TOO_LARGE

    if isinstance(error, ValidationError):
        return ErrorCode.INVALID_VALUE

    if isinstance(error, TransientBackendError):
        return ErrorCode.BACKEND_UNAVAILABLE

    if isinstance(error, CacheError):
        return ErrorCode.BACKEND_ERROR

    if isinstance(error, CapabilityError):
        return ErrorCode.CAPABILITY_MISSING

    if isinstance(error, ConfigurationError):
        return ErrorCode.CONFIGURATION_ERROR

    return ErrorCode.INTERNAL_ERROR
