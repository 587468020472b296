"""
cachefront - Resilience Module

Retry with exponential backoff and jitter for transient backend failures.
"""

from .retry import RetryPolicy, no_jitter, proportional_jitter, with_retry

__all__ = [
    "RetryPolicy",
    "no_jitter",
    "proportional_jitter",
    "with_retry",
]
