"""
Retry decorator with exponential backoff and timeout for async functions.

By default only transient failures are retried: Azure SDK errors and
per-attempt timeouts. Errors listed in `give_up_on` are never retried,
even when they are subclasses of a retried type (e.g.
ResourceNotFoundError is an AzureError, but retrying it cannot help).
"""
import asyncio
import logging
from functools import wraps
from typing import Callable, Optional, Tuple, Type, Union

from azure.core.exceptions import AzureError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from trickle.messages import get_logger

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]

TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (AzureError, TimeoutError)


def with_retry(
    timeout: float = 300,
    retries: int = 3,
    delay: float = 2,
    exceptions: ExceptionTypes = TRANSIENT_EXCEPTIONS,
    give_up_on: ExceptionTypes = (),
    logger_name: str = "trickle.retry",
    retry_if_func: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Retry decorator with exponential backoff and timeout for async functions.

    Each attempt is bounded by `timeout`. A failed attempt is retried when
    it matches `exceptions` and not `give_up_on` (or when `retry_if_func`
    returns True, if given), up to `retries` attempts in total, sleeping
    `delay`, `2 * delay`, ... up to `8 * delay` seconds in between. The
    last error is re-raised unchanged.

    Example:
        @with_retry(timeout=60, give_up_on=ResourceNotFoundError)
        async def _read_bytes(self, path: str) -> bytes:
            ...

    Raises:
        TimeoutError: If the last attempt exceeded the timeout
        The last attempt's error: If all retry attempts fail
    """
    logger = get_logger(logger_name)

    def should_retry(error: BaseException) -> bool:
        if retry_if_func is not None:
            return retry_if_func(error)
        if give_up_on and isinstance(error, give_up_on):
            return False
        return isinstance(error, exceptions)

    def decorator(func):
        @retry(
            stop=stop_after_attempt(retries),
            wait=wait_exponential(multiplier=delay, min=delay, max=delay * 8),
            retry=retry_if_exception(should_retry),
            before_sleep=before_sleep_log(logger.logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                async with asyncio.timeout(timeout):
                    return await func(*args, **kwargs)
            except TimeoutError:
                raise TimeoutError(
                    f"Operation {func.__name__} timed out after {timeout} seconds"
                )

        return wrapper

    return decorator
