"""Politeness delays between probe requests."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


class JitterBackoff:
    """Uniform random delay in ``[min_seconds, max_seconds]``.

    Both the RNG and the sleep coroutine are injectable so tests can run
    with a seeded ``random.Random`` and a no-op sleep.
    """

    def __init__(
        self,
        min_seconds: float,
        max_seconds: float,
        *,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError("jitter window must satisfy 0 <= min <= max")
        self._min = min_seconds
        self._max = max_seconds
        self._rng = rng or random.Random()  # noqa: S311
        self._sleep = sleep

    def next_delay(self) -> float:
        if self._max == self._min:
            return self._min
        return self._rng.uniform(self._min, self._max)

    async def wait(self) -> float:
        """Sleep for one sampled delay and return it."""
        delay = self.next_delay()
        if delay > 0:
            await self._sleep(delay)
        return delay
