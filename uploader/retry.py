"""Retry combinator shared by chunk uploads and manifest node uploads."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from common.exceptions import EncodingError
from common.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FailureHook = Callable[[int, Exception], Awaitable[None]]


async def retry(
    fn: Callable[..., Awaitable[T]],
    *args,
    attempts: int,
    on_failure: Optional[FailureHook] = None,
    backoff: float = 0.0,
) -> T:
    """
    Await ``fn(*args)`` until it succeeds or ``attempts`` calls have failed.

    Args:
        fn: Coroutine function to call
        *args: Arguments passed to fn on every attempt
        attempts: Maximum number of calls (at least 1)
        on_failure: Awaited once per failed attempt with (attempt, error)
        backoff: Base delay in seconds, doubled after each failure; 0 retries at once

    Returns:
        Result of the first successful call

    Raises:
        EncodingError: Immediately, without retrying
        Exception: The error of the last attempt once all attempts failed
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            return await fn(*args)
        except Exception as e:
            if on_failure is not None:
                await on_failure(attempt, e)
            if attempt == attempts or isinstance(e, EncodingError):
                raise
            logger.debug(f"Attempt {attempt}/{attempts} failed: {e}")
            if backoff > 0:
                await asyncio.sleep(backoff * 2 ** (attempt - 1))
