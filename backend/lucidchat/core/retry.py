"""Retry policy for outbound model calls.

Only status codes in ``retryable_codes`` are retried; the delay before retry
``n`` is ``base_delay * 2 ** (n - 1)`` (0.5s, 1s, 2s with the defaults).
``sleep`` is injectable so tests can observe delays without waiting.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

RETRYABLE_STATUS_CODES = frozenset({401, 429, 500, 502, 503, 504})


class BackendStatusError(Exception):
    """A backend answered with a non-200 status."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5
    retryable_codes: frozenset[int] = field(default=RETRYABLE_STATUS_CODES)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, BackendStatusError) and exc.status_code in self.retryable_codes

    def retrying(self, before_sleep=None) -> AsyncRetrying:
        """A fresh tenacity controller; re-raises the last error when exhausted."""
        return AsyncRetrying(
            sleep=self.sleep,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep,
            reraise=True,
        )
