"""Retry logic with exponential backoff for transient failures.

Used for idempotent calls only: listing VMs and registering the resource
provider. Bulk-action submissions are never wrapped; re-submitting a bulk
action is a caller decision.

Usage:
    @retry_with_exponential_backoff(max_attempts=3)
    def list_vms():
        return list(client.virtual_machines.list(resource_group))
"""

import functools
import logging
import random
import time
from typing import Any, Callable, TypeVar

from azure.core.exceptions import HttpResponseError, ServiceRequestError, ServiceResponseError

from azbulk.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    TimeoutError,
    ConnectionError,
    ServiceRequestError,
    ServiceResponseError,
    HttpResponseError,
)


def retry_with_exponential_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
) -> Callable[[F], F]:
    """Decorator for retrying operations with exponential backoff.

    HttpResponseError is only retried when its status code is transient
    (see should_retry_http_error).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)
        jitter: Add ±25% random jitter to delays (default: True)
        retryable_exceptions: Exception types to retry

    Returns:
        Decorated function that will retry on transient failures
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)
                    if attempt > 1:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt}/{max_attempts}"
                        )
                    return result

                except retryable_exceptions as e:
                    if not _is_transient(e) or attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {attempt} attempt(s): "
                            f"{LogSanitizer.sanitize_exception(e)}"
                        )
                        raise

                    actual_delay = delay
                    if jitter:
                        jitter_amount = delay * 0.25
                        actual_delay = delay + random.uniform(-jitter_amount, jitter_amount)
                    actual_delay = min(actual_delay, max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt}/{max_attempts}, "
                        f"retrying in {actual_delay:.2f}s: {LogSanitizer.sanitize_exception(e)}"
                    )
                    time.sleep(actual_delay)
                    delay *= 2

            raise RuntimeError(f"{func.__name__} failed with unknown error")

        return wrapper  # type: ignore

    return decorator


def _is_transient(error: Exception) -> bool:
    if isinstance(error, HttpResponseError):
        status_code = getattr(error, "status_code", None)
        return status_code is None or should_retry_http_error(status_code)
    return True


def should_retry_http_error(status_code: int) -> bool:
    """Determine if HTTP status code should trigger retry.

    Retryable status codes: 408, 429, 500, 502, 503, 504.
    """
    return status_code in {408, 429, 500, 502, 503, 504}


__all__ = ["RETRYABLE_EXCEPTIONS", "retry_with_exponential_backoff", "should_retry_http_error"]
