"""Retry policy for provisioning attempts.

Exponential backoff without jitter: delay_ms(n) = min(initial * multiplier**n,
max). Errors tagged permanent or fatal are never retried; untagged errors
are retried until the budget runs out. is_retryable() is the classifier
adapters use to tag raw exceptions.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import httpx

from creditflow.providers.errors import ErrorKind, ProvisioningError

__all__ = ["RetryConfig", "RetryPolicy", "is_retryable"]

if TYPE_CHECKING:
    from creditflow.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, BaseException, int], Awaitable[None] | None]

# Lowercased message fragments that mark an untagged error as transient.
_NETWORK_MARKERS = (
    "econnrefused",
    "connection refused",
    "enotfound",
    "name or service not known",
    "getaddrinfo",
    "etimedout",
    "timed out",
    "timeout",
)
_RUNTIME_MARKERS = (
    "browser",
    "playwright",
    "executable doesn't exist",
    "target closed",
)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as worth retrying.

    Tagged provisioning errors are classified by their kind. Untagged errors
    are retryable when they belong to the network class (refused connection,
    DNS failure, timeout) or the automation-runtime class (browser,
    playwright, missing executable).

    Args:
        error: The raised exception.

    Returns:
        True if the operation should be attempted again.
    """
    if isinstance(error, ProvisioningError):
        return error.kind == ErrorKind.RETRYABLE
    if isinstance(error, (TimeoutError, ConnectionError, httpx.TransportError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _NETWORK_MARKERS + _RUNTIME_MARKERS)


def _is_final(error: BaseException) -> bool:
    """Permanent or fatal provisioning errors stop the retry loop."""
    return isinstance(error, ProvisioningError) and error.kind != ErrorKind.RETRYABLE


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters.

    Attributes:
        max_retries: Retries after the first attempt (total calls = max_retries + 1).
        initial_delay_ms: Delay before the first retry.
        max_delay_ms: Upper bound on any single delay.
        backoff_multiplier: Growth factor between consecutive delays.
    """

    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryConfig":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


class RetryPolicy:
    """Runs an async operation with exponential backoff.

    Stateless apart from its config, so one instance can be shared by every
    slot of every task.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    def delay_ms(self, attempt: int) -> int:
        """Backoff before retry number `attempt` (0-based).

        Args:
            attempt: 0 for the delay after the first failure.

        Returns:
            Delay in milliseconds, capped at max_delay_ms.
        """
        delay = self.config.initial_delay_ms * (
            self.config.backoff_multiplier**attempt
        )
        return int(min(delay, self.config.max_delay_ms))

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: OnRetry | None = None,
    ) -> T:
        """Execute operation, retrying transient failures.

        Args:
            operation: Async callable with no arguments.
            on_retry: Optional callback (retry_number, error, next_delay_ms),
                invoked after each backoff sleep, just before the next
                attempt. May be sync or async.

        Returns:
            Result of the first successful call.

        Raises:
            Exception: The last error once retries are exhausted, or the
                first non-retryable error immediately.
        """
        max_retries = self.config.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                if attempt == max_retries or _is_final(e):
                    raise

                delay = self.delay_ms(attempt)
                logger.warning(
                    "Provisioning error (attempt %d/%d): %s. Retrying in %dms",
                    attempt + 1,
                    max_retries + 1,
                    e,
                    delay,
                )
                await asyncio.sleep(delay / 1000)
                if on_retry is not None:
                    callback_result = on_retry(attempt + 1, e, delay)
                    if asyncio.iscoroutine(callback_result):
                        await callback_result

        # range() always runs at least once and every path returns or raises
        raise RuntimeError("Retry loop exited without error or result")
