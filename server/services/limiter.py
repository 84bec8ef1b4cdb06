"""Bounded fan-out for per-round calculator work."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ConcurrencyLimiter:
    """
    Caps how many coroutines run against the backing store at once.

    One limiter is created per orchestrator and handed to whatever fans out
    work; it is never recreated between cycles.

    Usage:
        limiter = ConcurrencyLimiter(10)
        results = await limiter.map(process_round, rounds)
    """

    def __init__(self, max_concurrent: int = 10):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self.peak_active = 0

    @property
    def active(self) -> int:
        return self._active

    async def run(self, func: Callable[..., Awaitable[R]], *args: Any) -> R:
        """Run one coroutine function once a slot is free."""
        async with self._semaphore:
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)
            try:
                return await func(*args)
            finally:
                self._active -= 1

    async def map(self, func: Callable[[T], Awaitable[R]], items: Iterable[T]) -> list[R]:
        """
        Apply func to every item under the limit and wait for all of them.

        Results keep the order of `items`. An exception from func propagates
        to the caller, so per-item isolation belongs inside func. Cancelling
        the caller cancels every pending item, including ones still waiting
        for a slot.
        """
        return list(await asyncio.gather(*(self.run(func, item) for item in items)))
