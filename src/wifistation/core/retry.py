"""Backoff and retry helpers.

Provides the doubling scan backoff used between unproductive scan cycles,
and an async retry decorator with exponential backoff for driver commands.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class ScanBackoff:
    """Rescan interval that doubles on every unproductive scan cycle.

    The interval stays within ``[min_seconds, max_seconds]`` and only ever
    decreases through ``reset()``, which a successful join triggers.

    Usage:
        backoff = ScanBackoff(10, 300)
        delay = backoff.next_delay()  # 10, interval is now 20
        backoff.reset()               # back to 10
    """

    def __init__(self, min_seconds: float = 10.0, max_seconds: float = 300.0) -> None:
        self._min: float
        self._max: float
        self._current: float
        self.set_range(min_seconds, max_seconds)

    @property
    def current(self) -> float:
        """Delay the next rescan will use."""
        return self._current

    @property
    def min_seconds(self) -> float:
        return self._min

    @property
    def max_seconds(self) -> float:
        return self._max

    def set_range(self, min_seconds: float, max_seconds: float) -> None:
        """Change the bounds and restart from the floor.

        Raises:
            ValueError: If the bounds are not positive or max < min
        """
        if min_seconds <= 0:
            raise ValueError("Backoff minimum must be positive")
        if max_seconds < min_seconds:
            raise ValueError("Backoff maximum must not be below the minimum")
        self._min = min_seconds
        self._max = max_seconds
        self._current = min_seconds

    def next_delay(self) -> float:
        """Return the current delay, then double the interval (capped)."""
        delay = self._current
        if self._current < self._max:
            self._current = min(self._current * 2, self._max)
        return delay

    def reset(self) -> None:
        """Drop back to the minimum interval."""
        self._current = self._min


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for flaky driver commands.

    Attempt ``n`` (0-based) is followed by a pause of
    ``base_delay * exponential_base ** n`` seconds, capped at ``max_delay``
    and, with ``jitter``, scaled into the upper half of that range.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = (ConnectionError, TimeoutError, OSError)

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * self.exponential_base**attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay


def async_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry a coroutine function on the configured exceptions.

    Other exceptions propagate immediately; after the last attempt the
    final retryable exception propagates.

    Usage:
        @async_retry(RetryConfig(max_attempts=2, retryable_exceptions=(NetworkError,)))
        async def scan(self) -> list[ScanResult]:
            ...
    """
    policy = config or RetryConfig()

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except policy.retryable_exceptions as e:
                    attempt += 1
                    if attempt >= policy.max_attempts:
                        logger.error("%s failed after %d attempts: %s", func.__name__, attempt, e)
                        raise
                    delay = policy.calculate_delay(attempt - 1)
                    logger.warning(
                        "%s failed (%d/%d), retrying in %.1fs: %s",
                        func.__name__,
                        attempt,
                        policy.max_attempts,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
