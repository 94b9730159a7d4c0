"""
Retry utilities with exponential backoff for NewsDesk collaborator clients.

Only the clients of external collaborators (object store, queue) retry; the
article reconciliation core itself never does.
"""

import asyncio
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings

logger = get_logger(__name__)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions

    @classmethod
    def from_settings(
        cls,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        backoff_factor: Optional[float] = None,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ) -> "RetryConfig":
        """Fill unset values from ServiceSettings."""
        settings = get_settings()
        return cls(
            max_retries=settings.service.max_retries if max_retries is None else max_retries,
            base_delay=settings.service.retry_delay if base_delay is None else base_delay,
            max_delay=max_delay or settings.service.retry_delay * 10,
            backoff_factor=backoff_factor or settings.service.retry_backoff_factor,
            jitter=jitter,
            retryable_exceptions=retryable_exceptions,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay for retry attempt with exponential backoff and jitter."""
    delay = config.base_delay * (config.backoff_factor ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * 0.1
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def retry(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator for retrying function calls with exponential backoff.

    Exceptions outside ``retryable_exceptions`` propagate immediately.
    Once retries are exhausted a ``RetryError`` is raised from the last error.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            config = RetryConfig.from_settings(
                max_retries, base_delay, max_delay, backoff_factor, jitter, retryable_exceptions
            )

            for attempt in range(config.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_retries:
                        logger.error(f"Function {func.__name__} failed after {config.max_retries} retries: {e}")
                        raise RetryError(f"Function {func.__name__} failed after {config.max_retries} retries") from e

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"Function {func.__name__} failed (attempt {attempt + 1}/{config.max_retries + 1}): {e}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    if on_retry:
                        on_retry(e, attempt + 1)
                    time.sleep(delay)

        return wrapper
    return decorator


def async_retry(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator for retrying async function calls with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier for delay after each retry
        jitter: Whether to add random jitter to delays
        retryable_exceptions: Tuple of exception types to retry on
        on_retry: Callback function called on each retry attempt

    Returns:
        Decorated async function
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            config = RetryConfig.from_settings(
                max_retries, base_delay, max_delay, backoff_factor, jitter, retryable_exceptions
            )

            for attempt in range(config.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_retries:
                        logger.error(f"Async function {func.__name__} failed after {config.max_retries} retries: {e}")
                        raise RetryError(
                            f"Async function {func.__name__} failed after {config.max_retries} retries"
                        ) from e

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"Async function {func.__name__} failed (attempt {attempt + 1}/{config.max_retries + 1}): {e}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    if on_retry:
                        on_retry(e, attempt + 1)
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
