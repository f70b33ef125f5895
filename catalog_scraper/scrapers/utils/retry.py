"""Retry policies with exponential backoff for page and API fetches."""

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from catalog_scraper.config import settings
from catalog_scraper.core.exceptions import (
    BlockedResponseError,
    ProxyAuthError,
    TransientFetchError,
)


logger = structlog.get_logger(__name__)

# Errors that may succeed on another attempt (new session, no proxy, or just later)
RETRYABLE_FETCH_ERRORS = (BlockedResponseError, ProxyAuthError, TransientFetchError)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "fetch_retry_scheduled",
        attempt=retry_state.attempt_number,
        sleep_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
        error_type=type(exc).__name__ if exc else None,
        error=str(exc) if exc else None,
    )


def build_fetch_retrying(
    max_attempts: int = None,
    wait_min: float = None,
    wait_max: float = None,
) -> AsyncRetrying:
    """Build the retry controller used around one fetch.

    Args:
        max_attempts: Total attempts, first one included
            (defaults to MAX_REQUEST_RETRIES + 1)
        wait_min: Minimum backoff in seconds
        wait_max: Maximum backoff in seconds

    Returns:
        AsyncRetrying that re-raises the last error once attempts run out
    """
    if max_attempts is None:
        max_attempts = settings.MAX_REQUEST_RETRIES + 1
    if wait_min is None:
        wait_min = settings.RETRY_WAIT_MIN_SECONDS
    if wait_max is None:
        wait_max = settings.RETRY_WAIT_MAX_SECONDS

    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
        retry=retry_if_exception_type(RETRYABLE_FETCH_ERRORS),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
