"""
Utility decorators for the RAG pipeline.

Provides common helpers for timing, retrying and bounding external calls.
"""

import asyncio
import inspect
import time
import functools
from typing import Any, Awaitable, Callable, Type, TypeVar
from ragcore.utils.logging import get_logger
from ragcore.utils.exceptions import UpstreamTimeout

T = TypeVar("T")


def timing_decorator(func: Callable) -> Callable:
    """
    Decorator to measure function execution time.

    Works for both plain functions and coroutine functions.

    Args:
        func: Function to be timed

    Returns:
        Wrapped function with timing
    """
    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
                execution_time = time.perf_counter() - start_time
                logger.debug(f"⏱️ {func.__name__} executed in {execution_time:.3f}s")
                return result
            except Exception as e:
                execution_time = time.perf_counter() - start_time
                logger.error(f"❌ {func.__name__} failed after {execution_time:.3f}s: {str(e)}")
                raise

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
            execution_time = time.perf_counter() - start_time
            logger.debug(f"⏱️ {func.__name__} executed in {execution_time:.3f}s")
            return result
        except Exception as e:
            execution_time = time.perf_counter() - start_time
            logger.error(f"❌ {func.__name__} failed after {execution_time:.3f}s: {str(e)}")
            raise

    return wrapper


def retry_decorator(max_retries: int = 3, delay: float = 1.0):
    """
    Decorator to retry a coroutine function on failure.

    Only used off the request path (startup, admin operations); request-path
    calls degrade instead of retrying.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Delay between retries in seconds

    Returns:
        Decorator function
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if attempt == max_retries:
                        logger.error(f"❌ {func.__name__} failed after {max_retries} retries: {str(e)}")
                        raise

                    logger.warning(f"⚠️ {func.__name__} attempt {attempt + 1} failed: {str(e)}. Retrying in {delay}s...")
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    timeout_error: Type[UpstreamTimeout],
    operation: str
) -> T:
    """
    Await an external call under an explicit timeout.

    Args:
        awaitable: The pending external call
        timeout: Timeout in seconds
        timeout_error: UpstreamTimeout subclass to raise
        operation: Human-readable name used in the error message

    Returns:
        The call's result

    Raises:
        UpstreamTimeout: If the call does not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise timeout_error(f"{operation} timed out after {timeout}s") from e


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return round((time.perf_counter() - start) * 1000, 2)


def clamp(value: Any, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp a numeric value into [lower, upper]; non-numeric values map to lower."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return lower
    if number != number:  # NaN
        return lower
    return max(lower, min(upper, number))
