from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with linear backoff.

    The delay after failed attempt `n` (1-based) is `base_delay * n` seconds.
    Only exceptions listed in `retry_on` are retried; anything else propagates
    on the first occurrence.
    """

    max_attempts: int = 3
    base_delay: float = 0.3
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * max(1, int(attempt))

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        context: str = "operation",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        attempts = max(1, int(self.max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                return await func()
            except self.retry_on as exc:
                if attempt >= attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.debug(f"{context}: attempt {attempt}/{attempts} failed ({exc}); retrying in {delay:.2f}s")
                await sleep(delay)
        raise AssertionError("unreachable")
