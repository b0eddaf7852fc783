"""
Retry policy for origin fetches.

A fetch is retried only while its outcome is transient (network-level error).
Definitive answers (image found, page missing) are returned immediately, and
when attempts run out the last transient outcome is returned, not raised.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger("preview.retry")

T = TypeVar("T")

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2 # first try + one retry
    delay: float = 1.0    # seconds, fixed between attempts

def _last_result(retry_state: RetryCallState):
    return retry_state.outcome.result()

async def retry_transient(
    fn: Callable[..., Awaitable[T]],
    policy: RetryPolicy,
    is_transient: Callable[[T], bool],
    *args: Any,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await fn(*args) up to policy.max_attempts times with a fixed delay in between.
    fn may be a coroutine function or any callable returning an awaitable.
    Exceptions raised by fn are not retried and propagate unchanged.
    """
    async def attempt() -> T:
        # AsyncRetrying awaits only coroutine functions
        return await fn(*args)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.delay),
        retry=retry_if_result(is_transient),
        before_sleep=before_sleep_log(logger, logging.INFO),
        retry_error_callback=_last_result,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(attempt)
