"""
Retry Controller for generation-service calls.

Wraps a fallible async operation with exponential backoff and jitter.
Errors are classified by their text: overloaded / unavailable responses are
retried, everything else is raised immediately.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error text that marks a transient service condition
RETRYABLE_ERROR_MARKERS = ("503", "overloaded", "UNAVAILABLE")

# Backoff growth per retry and jitter bounds
BACKOFF_FACTOR = 1.5
JITTER_MIN = 0.85
JITTER_MAX = 1.15


class TransientServiceError(Exception):
    """Raised when a retryable error persists past the retry budget."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_retryable_error(error: BaseException) -> bool:
    """Check whether an error looks like a transient service condition."""
    text = str(error)
    return any(marker in text for marker in RETRYABLE_ERROR_MARKERS)


class RetryController:
    """
    Exponential backoff with jitter.

    Args:
        max_retries: Retries allowed after the first attempt
        initial_delay: Starting delay in seconds
        max_delay: Upper bound for a single delay in seconds
        sleep: Async sleep function (injectable for tests)
        rng: Uniform random source, called as rng(low, high)
    """

    def __init__(
        self,
        max_retries: int = 5,
        initial_delay: float = 2.0,
        max_delay: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng

    def next_delay(self, delay: float) -> float:
        """Grow the delay by the backoff factor with jitter, capped at max_delay."""
        jitter = self._rng(JITTER_MIN, JITTER_MAX)
        return min(delay * BACKOFF_FACTOR * jitter, self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` until it succeeds, fails fatally, or runs out of retries.

        Returns:
            The operation's result

        Raises:
            The original error for non-retryable failures
            TransientServiceError once retryable failures exceed max_retries
        """
        retries = 0
        delay = self.initial_delay

        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_retryable_error(e):
                    raise

                retries += 1
                if retries > self.max_retries:
                    raise TransientServiceError(
                        f"Generation service still unavailable after {retries} attempts: {e}",
                        attempts=retries,
                        last_error=e,
                    ) from e

                delay = self.next_delay(delay)
                logger.warning(
                    f"Generation service overloaded. Retrying in {delay:.1f}s "
                    f"(attempt {retries}/{self.max_retries})"
                )
                await self._sleep(delay)
