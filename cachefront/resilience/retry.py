"""
cachefront - Retry Logic with Exponential Backoff

Provides a retry policy object and an async retry loop for transient backend failures.

- Exponential backoff with jitter to prevent thundering herd
- Delay computation is pure so the policy can be tested without I/O
- Non-transient errors (validation, configuration) are raised immediately
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..errors import is_retryable_error

logger = logging.getLogger(__name__)


def proportional_jitter(factor: float = 0.1) -> Callable[[float], float]:
    """
    Build a jitter function adding up to ``factor * delay`` of random extra delay.

    Args:
        factor: Jitter randomization factor (0-1)

    Returns:
        Function mapping a base delay to the amount of jitter to add
    """
    if not 0 <= factor <= 1:
        raise ValueError("jitter factor must be between 0 and 1")

    def _jitter(delay: float) -> float:
        return random.uniform(0, delay * factor)

    return _jitter


def no_jitter(delay: float) -> float:
    """Jitter function that adds nothing (deterministic delays)."""
    return 0.0


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first one (default: 3)
        base_delay: Delay before the second attempt in seconds (default: 0.1)
        multiplier: Backoff multiplier applied per attempt (default: 2.0)
        max_delay: Maximum delay in seconds before jitter (default: 5.0)
        jitter: Function returning extra delay for a given base delay
    """

    max_attempts: int = 3
    base_delay: float = 0.1
    multiplier: float = 2.0
    max_delay: float = 5.0
    jitter: Callable[[float], float] = field(default_factory=proportional_jitter)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    def delay_for(self, attempt: int) -> float:
        """
        Calculate the delay to wait after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)

        Returns:
            Delay in seconds

        Example:
            >>> policy = RetryPolicy(base_delay=0.1, jitter=no_jitter)
            >>> policy.delay_for(1), policy.delay_for(2), policy.delay_for(3)
            (0.1, 0.2, 0.4)
        """
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        return max(0.0, delay + self.jitter(delay))

    def delays(self) -> list[float]:
        """Delays that a fully failing call would sleep, in order."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]


async def with_retry(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    policy: RetryPolicy | None = None,
    operation: str | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async callable with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        policy: Retry policy (uses defaults if None)
        operation: Operation name used in log records
        on_retry: Optional callback called before each retry (attempt, error)
        **kwargs: Keyword arguments for func

    Returns:
        Result of successful function execution

    Raises:
        The first non-retryable exception, or the last exception once attempts are exhausted
    """
    if policy is None:
        policy = RetryPolicy()

    name = operation or getattr(func, "__name__", "call")

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await func(*args, **kwargs)

            if attempt > 1:
                logger.info(
                    f"Retry succeeded on attempt {attempt}",
                    extra={"attempt": attempt, "operation": name},
                )
            return result

        except Exception as e:
            if not is_retryable_error(e):
                logger.debug(
                    f"Non-retryable error, not retrying: {e}",
                    extra={"error_type": type(e).__name__, "operation": name},
                )
                raise

            if attempt >= policy.max_attempts:
                logger.error(
                    f"All {policy.max_attempts} attempts exhausted for {name}",
                    extra={
                        "operation": name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            delay = policy.delay_for(attempt)

            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} of {name} failed, retrying after {delay:.3f}s",
                extra={
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_seconds": delay,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "operation": name,
                },
            )

            if on_retry:
                try:
                    on_retry(attempt, e)
                except Exception as callback_error:
                    logger.error(f"Retry callback failed: {callback_error}")

            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error: no exception and no result")
