from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .exceptions import TransientError

T = TypeVar("T")

DEFAULT_BACKEND_ATTEMPTS = 2


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = DEFAULT_BACKEND_ATTEMPTS,
    wait_seconds: float = 0.5,
    retry_on: type[BaseException] = TransientError,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> T:
    """
    Await ``func`` and retry it on ``retry_on`` errors.

    Args:
        func: Coroutine function to call.
        max_attempts: Total attempts, including the first one (default: 2,
            i.e. a single retry).
        wait_seconds: Fixed pause between attempts.
        retry_on: Exception type that triggers a retry.
        logger: Logger for the before-sleep warning.

    Returns:
        Whatever ``func`` returns.

    Raises:
        The last ``retry_on`` error once attempts are exhausted, or any other
        error immediately.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(max_attempts, 1)),
        wait=wait_fixed(max(wait_seconds, 0.0)),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(
            logger or logging.getLogger(__name__), logging.WARNING
        ),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
