"""
Reliability patterns for fire-enrich.

Provides the declarative retry policy used by provider adapters, cooperative
cancellation tokens, per-call timeouts and performance tracking.
"""

import asyncio
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from fire_enrich.core.exceptions import (
    EnrichmentCancelledError,
    EnrichmentTimeoutError,
    ExternalServiceError,
    RateLimitError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation signal.

    Passed explicitly through the scheduler, discovery and adapters and checked
    at every suspension point. Setting it never interrupts a request already
    on the wire.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise EnrichmentCancelledError(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


class RetryPolicy:
    """
    Bounded retry loop reacting to rate limits distinctly from other failures.

    429 responses (RateLimitError) retry up to ``rate_limit_attempts`` times
    with a linear delay ``rate_limit_step * attempt`` capped at
    ``rate_limit_cap``, or the server's Retry-After when it is sent. Transport
    failures and 5xx responses (ExternalServiceError) retry up to
    ``max_attempts`` with ``error_step * attempt`` capped at ``error_cap``.
    Anything else, including other 4xx responses and malformed bodies, is
    raised immediately.
    """

    def __init__(
        self,
        name: str,
        max_attempts: int = 3,
        rate_limit_attempts: int = 4,
        rate_limit_step: float = 1.5,
        rate_limit_cap: float = 5.0,
        error_step: float = 0.4,
        error_cap: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.max_attempts = max_attempts
        self.rate_limit_attempts = rate_limit_attempts
        self.rate_limit_step = rate_limit_step
        self.rate_limit_cap = rate_limit_cap
        self.error_step = error_step
        self.error_cap = error_cap
        self._sleep = sleep

    @staticmethod
    def is_retryable_status(status_code: Optional[int]) -> bool:
        """No status (transport failure) or a server error."""
        return status_code is None or status_code >= 500

    def _should_retry(self, retry_state: RetryCallState) -> bool:
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return False
        exc = retry_state.outcome.exception()
        attempt = retry_state.attempt_number
        if isinstance(exc, RateLimitError):
            return attempt < self.rate_limit_attempts
        if isinstance(exc, ExternalServiceError):
            return self.is_retryable_status(exc.status_code) and attempt < self.max_attempts
        return False

    def delay_for(self, exc: BaseException, attempt: int) -> float:
        """Backoff before the next attempt after ``attempt`` failed with ``exc``."""
        if isinstance(exc, RateLimitError):
            if exc.retry_after is not None:
                return max(0.0, min(exc.retry_after, self.rate_limit_cap))
            return min(self.rate_limit_step * attempt, self.rate_limit_cap)
        return min(self.error_step * attempt, self.error_cap)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.outcome.exception(), retry_state.attempt_number)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            "Retrying provider call",
            policy=self.name,
            attempt=retry_state.attempt_number,
            error=str(exc),
            error_type=type(exc).__name__,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> T:
        """Run ``func`` under this policy, re-raising the last error when exhausted."""
        attempts_cap = stop_after_attempt(max(self.max_attempts, self.rate_limit_attempts))

        def stop(retry_state: RetryCallState) -> bool:
            if cancel_token is not None and cancel_token.cancelled:
                return True
            return attempts_cap(retry_state)

        retrying = AsyncRetrying(
            stop=stop,
            wait=self._wait,
            retry=self._should_retry,
            before_sleep=self._before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        async def attempt() -> T:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            return await func(*args, **kwargs)

        return await retrying(attempt)


async def with_timeout(
    awaitable: Awaitable[T], timeout_seconds: Optional[float], operation: str = "operation"
) -> T:
    """Await with a deadline, raising EnrichmentTimeoutError when it expires."""
    if timeout_seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise EnrichmentTimeoutError(
            f"{operation} timed out after {timeout_seconds} seconds",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        ) from e


def track_performance(operation_name: str):
    """
    Decorator to track duration of async operations.

    Args:
        operation_name: Name of the operation for logging
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Operation failed",
                    operation=operation_name,
                    duration_seconds=round(time.monotonic() - start_time, 3),
                    error=str(e),
                )
                raise
            logger.debug(
                "Operation completed",
                operation=operation_name,
                duration_seconds=round(time.monotonic() - start_time, 3),
            )
            return result

        return wrapper

    return decorator
