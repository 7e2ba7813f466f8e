"""Retry Manager - Configurable retry logic with backoff."""

import asyncio
import functools
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


class ExponentialBackoff:
    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()
        self.attempt = 0

    def next_delay(self) -> float:
        delay = min(
            self.config.initial_delay * (self.config.exponential_base**self.attempt),
            self.config.max_delay,
        )
        self.attempt += 1
        if self.config.jitter:
            delay = delay * (0.5 + random.random())
        return delay

    def reset(self):
        self.attempt = 0


class RetryManager:
    def __init__(
        self,
        config: RetryConfig | None = None,
        exceptions: tuple[type[Exception], ...] = (Exception,),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or RetryConfig()
        self.exceptions = exceptions
        self.sleep = sleep

    def execute(self, func: Callable, *args, **kwargs):
        backoff = ExponentialBackoff(self.config)
        last_error = None

        for attempt in range(self.config.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except self.exceptions as e:
                last_error = e
                if attempt < self.config.max_retries:
                    delay = backoff.next_delay()
                    logger.warning(
                        f"{getattr(func, '__name__', 'call')} failed with {type(e).__name__}: {e}. "
                        f"Retrying in {delay:.2f}s (attempt {attempt + 1}/{self.config.max_retries})"
                    )
                    self.sleep(delay)

        if last_error is not None:
            raise last_error
        raise RuntimeError("No attempts made")


def retry_with_backoff(
    config: RetryConfig | None = None, exceptions: tuple[type[Exception], ...] = (Exception,)
):
    """Decorator for automatic retry with exponential backoff."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            manager = RetryManager(config, exceptions=exceptions)
            return manager.execute(func, *args, **kwargs)

        return wrapper

    return decorator


def async_retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    exceptions: type[Exception] | tuple[type[Exception], ...] = (Exception,),
    jitter: bool = True,
) -> Callable:
    """
    Retry an async function with exponential backoff.

    Args:
        max_retries: Maximum number of retries before giving up.
        initial_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds to wait between retries.
        backoff_factor: Multiplier for the delay after each failure.
        exceptions: Exceptions that trigger a retry; anything else propagates at once.
        jitter: Whether to add random jitter to the delay.

    Returns:
        Callable: The decorated function.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = initial_delay
            attempt = 0

            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt > max_retries:
                        logger.error(f"Function {func.__name__} failed after {max_retries} retries. Last error: {e}")
                        raise

                    delay = current_delay
                    if jitter:
                        delay = delay * (0.5 + random.random())

                    logger.warning(
                        f"Function {func.__name__} failed with {type(e).__name__}: {e}. "
                        f"Retrying in {delay:.2f}s... (Attempt {attempt}/{max_retries})"
                    )

                    await asyncio.sleep(delay)

                    current_delay = min(current_delay * backoff_factor, max_delay)
        return wrapper
    return decorator
