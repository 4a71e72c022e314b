"""Tenacity-based retries for calls to the crawl provider and site files."""

import asyncio
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 30

# Transport-level failures; HTTP status errors are answers and are not retried
NETWORK_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)


def _log_before_sleep(operation: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying operation",
            operation=operation,
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            error=str(error) if error else None,
            wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
        )

    return log


def async_retry_with_backoff(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    retry_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry an async callable with exponential backoff.

    The last exception is re-raised once attempts are exhausted; exceptions
    outside `retry_exceptions` propagate on the first failure.

    Args:
        max_attempts: Attempts including the first call
        min_wait: Lower bound of the backoff in seconds
        max_wait: Upper bound of the backoff in seconds
        retry_exceptions: Exception types worth another attempt (default: NETWORK_EXCEPTIONS)
    """
    exceptions = retry_exceptions or NETWORK_EXCEPTIONS

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
                retry=retry_if_exception_type(exceptions),
                before_sleep=_log_before_sleep(func.__name__, max_attempts),
                reraise=True,
            )
            return await retrying(func, *args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def retry_network_operation(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry HTTP calls on transport failures only."""
    return async_retry_with_backoff(max_attempts=max_attempts, retry_exceptions=NETWORK_EXCEPTIONS)
