"""
Resilience patterns for MarketSync: a token-bucket rate limiter, call
timeouts and a bounded worker pool.

A hung request fails its own item instead of stalling the batch.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from marketsync.core.exceptions import RemoteTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# ─── Token Bucket ─────────────────────────────────────────────


class TokenBucket:
    """
    Async token-bucket rate limiter.

    The bucket holds up to ``capacity`` tokens and refills continuously at
    ``rate`` tokens per second. ``acquire()`` takes one token, sleeping
    until one is available.

    Usage:
        limiter = TokenBucket(rate=2.0, capacity=5)
        await limiter.acquire()
        response = await client.request(...)
    """

    def __init__(
        self,
        rate: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        """Tokens currently available (after refill)."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    async def acquire(self, tokens: float = 1.0) -> float:
        """
        Take ``tokens`` from the bucket, waiting if necessary.

        Returns:
            Seconds spent waiting.
        """
        if tokens > self.capacity:
            raise ValueError("cannot acquire more tokens than the bucket capacity")
        waited = 0.0
        async with self._lock:
            self._refill()
            while self._tokens < tokens:
                delay = (tokens - self._tokens) / self.rate
                logger.debug(f"Rate limiter waiting {delay:.3f}s for a token")
                await self._sleep(delay)
                waited += delay
                self._refill()
            self._tokens -= tokens
        return waited


# ─── Timeouts ─────────────────────────────────────────────────


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    operation: str = "remote call",
) -> T:
    """
    Race ``awaitable`` against ``timeout`` seconds.

    Raises:
        RemoteTimeoutError: The call did not finish in time. It is not retried.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"{operation} timed out after {timeout:.1f}s")
        raise RemoteTimeoutError(
            f"{operation} timed out after {timeout:.1f}s",
            details={"operation": operation, "timeout_seconds": timeout},
        ) from e


# ─── Bounded Worker Pool ──────────────────────────────────────


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 1,
) -> list[R]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Results are returned in input order. The worker is responsible for
    turning per-item failures into results; any exception it raises
    propagates to the caller.

    Args:
        items: Inputs to process.
        worker: Async callable applied to each input.
        concurrency: Maximum simultaneous workers (1 = sequential).
    """
    items = list(items)
    if concurrency <= 1:
        return [await worker(item) for item in items]

    semaphore = asyncio.Semaphore(concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))
