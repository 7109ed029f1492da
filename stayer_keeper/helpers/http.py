"""HTTP client utilities and helpers."""

from asyncio import sleep
from collections.abc import Awaitable, Callable
from functools import wraps

from typing import Any, ParamSpec, TypeVar

import httpx

from stayer_keeper.helpers.constants import (
    DEFAULT_TIMEOUT,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)
from stayer_keeper.helpers.logging import get_logger


logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (httpx.TransportError,)
"""Errors worth retrying in-loop: connection resets, timeouts, DNS failures"""


def retry_with_backoff(
    max_retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    *,
    retry_on: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    log_errors: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator to retry async functions with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates on the first occurrence.

    Args:
        max_retries: Maximum number of attempts (default: 5)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay between retries (default: 60.0)
        retry_on: Exception types that trigger a retry
        log_errors: Whether to log retry attempts (default: True)

    Returns:
        Decorated function

    Example:
        ```python
        @retry_with_backoff(max_retries=3, base_delay=2.0)
        async def get_status(client: httpx.AsyncClient) -> dict:
            response = await client.post(node_url, json=payload)
            response.raise_for_status()
            return response.json()

        # Retries up to 3 times with delays of 2s, 4s
        ```
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_retries:
                        if log_errors:
                            logger.error(
                                "%s failed after %d attempts: %s",
                                func.__name__,
                                max_retries,
                                e,
                            )
                        raise
                    if log_errors:
                        logger.warning(
                            "%s error (attempt %d/%d): %s",
                            func.__name__,
                            attempt,
                            max_retries,
                            e,
                        )
                await sleep(min(base_delay * (2 ** (attempt - 1)), max_delay))

            msg = f"{func.__name__} called with max_retries={max_retries}"
            raise ValueError(msg)

        return wrapper

    return decorator


def create_http_client(
    timeout: float = DEFAULT_TIMEOUT, **kwargs: Any
) -> httpx.AsyncClient:
    """Create a configured httpx AsyncClient.

    Args:
        timeout: Default timeout in seconds (default: DEFAULT_TIMEOUT)
        **kwargs: Additional httpx.AsyncClient kwargs

    Returns:
        Configured AsyncClient instance
    """
    return httpx.AsyncClient(timeout=timeout, **kwargs)


def handle_http_errors(
    default_return: T,
    *,
    log_errors: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator that turns HTTP failures into a default value.

    Used where a failed fetch should degrade the result (e.g. missing
    telemetry) instead of aborting the caller.

    Args:
        default_return: Value to return on error
        log_errors: Whether to log errors (default: True)

    Returns:
        Decorated function that returns ``default_return`` on failure

    Example:
        ```python
        @handle_http_errors(default_return=[])
        async def fetch_scores(client: httpx.AsyncClient, url: str) -> list[dict]:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()["data"]
        ```
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except httpx.HTTPStatusError as e:
                if log_errors:
                    logger.warning(
                        "%s HTTP error: %s %s",
                        func.__name__,
                        e.response.status_code,
                        e.response.text[:100] if e.response.text else "",
                    )
                return default_return
            except httpx.HTTPError as e:
                if log_errors:
                    logger.warning("%s HTTP error: %s", func.__name__, e)
                return default_return
            except ValueError as e:
                # Malformed JSON or payload validation
                if log_errors:
                    logger.warning("%s invalid response: %s", func.__name__, e)
                return default_return

        return wrapper

    return decorator


__all__ = [
    "TRANSIENT_ERRORS",
    "create_http_client",
    "handle_http_errors",
    "retry_with_backoff",
]
