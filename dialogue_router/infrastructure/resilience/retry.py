"""
Retry для транспортных ошибок провайдеров.

Повторяется только отказ соединения (ProviderUnavailableError): запрос ещё не ушёл,
повтор дешёвый. Таймаут и 429 не повторяются: они сразу передают ход следующему
провайдеру в цепочке.
"""

import logging
from typing import Any, Callable

from tenacity import (
    AsyncRetrying,
    after_log,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dialogue_router.core.errors import ProviderUnavailableError

logger = logging.getLogger("dialogue-router.infrastructure.retry")


def create_retry(
    max_attempts: int = 2,
    min_wait: float = 0.5,
    max_wait: float = 2.0,
    multiplier: float = 0.5
) -> AsyncRetrying:
    """
    Create an async retry controller with exponential backoff.

    Args:
        max_attempts: Total attempts including the first one
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        multiplier: Multiplier for exponential backoff

    Returns:
        AsyncRetrying instance
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(ProviderUnavailableError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )


async def call_with_connect_retry(
    func: Callable[..., Any],
    *args,
    retries: int = 1,
    min_wait: float = 0.5,
    **kwargs
) -> Any:
    """
    Call an async function, retrying connection failures only.

    Args:
        func: Async function to call
        *args: Positional arguments for the function
        retries: Extra attempts after the first one
        min_wait: Minimum backoff between attempts
        **kwargs: Keyword arguments for the function

    Returns:
        Result of the function call

    Raises:
        ProviderUnavailableError: If every attempt failed to connect
        ProviderError: Any other provider error, without retry
    """
    async for attempt in create_retry(max_attempts=retries + 1, min_wait=min_wait, max_wait=max(min_wait, 2.0)):
        with attempt:
            return await func(*args, **kwargs)
