"""Retry helpers for idempotent HTTP requests."""

import logging

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


logger = structlog.get_logger(__name__)

# Transport-level failures only. A non-2xx status is an answer, not a glitch.
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def transport_retry(attempts: int) -> AsyncRetrying:
    """Build an AsyncRetrying controller for GET requests.

    Usage:
        async for attempt in transport_retry(2):
            with attempt:
                response = await client.get(url)

    Args:
        attempts: Total number of attempts (1 disables retrying)

    Returns:
        Configured AsyncRetrying that re-raises the last error
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
