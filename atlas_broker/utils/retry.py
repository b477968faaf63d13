"""
Retry utilities for Atlas admin API calls.

Handles transient failures (network errors, rate limiting, gateway errors)
with exponential backoff via tenacity.
"""
import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from atlas_broker.config.logging import get_logger
from atlas_broker.core.exceptions import AtlasAPIError

logger = get_logger(__name__)

# HTTP status codes that are retryable for idempotent requests
RETRYABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests (rate limiting)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


def is_retryable_atlas_error(exception: BaseException, idempotent: bool = True) -> bool:
    """
    Determine if an Atlas API failure should trigger a retry.

    Mutating requests are only retried when Atlas cannot have acted on them:
    the connection was never established or the request was rate limited.

    Args:
        exception: The exception to check
        idempotent: Whether the request can safely be sent twice

    Returns:
        True if the exception is retryable, False otherwise
    """
    if isinstance(exception, (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)):
        return True

    if isinstance(exception, AtlasAPIError):
        if exception.status_code == 429:
            return True
        return idempotent and exception.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exception, httpx.TransportError):
        return idempotent

    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "atlas_api_call_failed_retrying",
        attempt=retry_state.attempt_number,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


def atlas_retrying(
    max_retries: int = 3,
    idempotent: bool = True,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
) -> AsyncRetrying:
    """
    Build a retry controller for one Atlas API request.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        idempotent: Whether the request can safely be sent twice
        initial_delay: Initial delay between retries in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)

    Returns:
        tenacity AsyncRetrying that re-raises the last error

    Example:
        async for attempt in atlas_retrying(max_retries=5):
            with attempt:
                response = await client.get(url)
    """
    return AsyncRetrying(
        retry=retry_if_exception(lambda e: is_retryable_atlas_error(e, idempotent)),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=initial_delay, max=max_delay),
        before_sleep=_log_retry,
        reraise=True,
    )
