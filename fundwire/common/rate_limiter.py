"""
Token bucket rate limiter for the generation service.

One limiter is built per process and handed to every caller that talks to
the generation service, so all extraction calls draw from the same quota.
Callers are expected to be sequential (one extraction call in flight at a
time); there is no locking.

Usage:
    limiter = TokenRateLimiter(tokens_per_minute=60000)
    await limiter.consume(estimated_tokens)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# Refill rate is expressed per minute
REFILL_WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RateBudget:
    """Snapshot of the bucket state."""
    capacity: int
    available: float
    last_refill_time: float


class TokenRateLimiter:
    """
    Token bucket shaping outbound call rate.

    The bucket holds at most ``capacity`` tokens and refills continuously at
    ``capacity`` tokens per minute. ``consume`` waits exactly as long as it
    takes for a shortfall to regenerate.

    Args:
        tokens_per_minute: Bucket capacity and refill rate
        clock: Monotonic clock in seconds (injectable for tests)
        sleep: Async sleep function (injectable for tests)
    """

    def __init__(
        self,
        tokens_per_minute: int = 60000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if tokens_per_minute <= 0:
            raise ValueError("tokens_per_minute must be positive")
        self.capacity = tokens_per_minute
        self.available = float(tokens_per_minute)
        self._clock = clock
        self._sleep = sleep
        self.last_refill_time = clock()

    @property
    def budget(self) -> RateBudget:
        return RateBudget(
            capacity=self.capacity,
            available=self.available,
            last_refill_time=self.last_refill_time,
        )

    def _refill(self) -> None:
        """Add tokens proportional to elapsed time, capped at capacity."""
        now = self._clock()
        elapsed = now - self.last_refill_time
        if elapsed <= 0:
            return

        tokens_to_add = elapsed * self.capacity / REFILL_WINDOW_SECONDS
        self.available = min(self.available + tokens_to_add, float(self.capacity))
        self.last_refill_time = now

    def time_until_available(self, tokens: int) -> float:
        """Seconds until ``tokens`` could be consumed without waiting."""
        self._refill()
        shortfall = tokens - self.available
        if shortfall <= 0:
            return 0.0
        return shortfall * REFILL_WINDOW_SECONDS / self.capacity

    async def consume(self, tokens: int) -> None:
        """
        Take ``tokens`` from the bucket, waiting for a refill if needed.

        A request larger than the capacity waits for a full bucket and then
        drains it to zero.
        """
        if tokens <= 0:
            return

        wait_seconds = self.time_until_available(tokens)
        if wait_seconds > 0:
            logger.info(
                f"Token budget exceeded ({tokens} requested, {self.available:.0f} available), "
                f"waiting {wait_seconds:.1f} seconds..."
            )
            await self._sleep(wait_seconds)
            self._refill()

        self.available = max(0.0, self.available - tokens)
