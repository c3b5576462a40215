"""
Retry helper for outbound provider calls

Exponential backoff via tenacity. Only transport failures and
retryable status codes (429, 5xx) are retried.
"""

import logging
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class RetryableHTTPError(Exception):
    """Provider answered with a status worth retrying"""

    def __init__(self, status_code: int):
        super().__init__(f"Provider responded with {status_code}")
        self.status_code = status_code


def raise_for_retryable(response: httpx.Response) -> None:
    if response.status_code in RETRYABLE_STATUS:
        raise RetryableHTTPError(response.status_code)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 8.0,
) -> T:
    """Run func, retrying with doubling delays; the last error is re-raised"""

    @retry(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=initial_delay, min=initial_delay, max=max_delay),
        retry=retry_if_exception_type((httpx.TransportError, RetryableHTTPError)),
        reraise=True,
    )
    async def _retry_wrapper():
        return await func()

    return await _retry_wrapper()
