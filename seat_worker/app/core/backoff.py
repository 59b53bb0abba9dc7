"""Backoff utilities.

`exponential_backoff` is an async generator driving retry loops: it yields
`(attempt, delay)` for the caller to try an operation, and if the caller
comes back for another attempt it first sleeps `delay` seconds. The delay
grows by `multiplier` per attempt and is capped at `max_delay`.

    async for attempt, delay in exponential_backoff(0.5, 10.0, 2.0, 5):
        try:
            return await connect()
        except ConnectionError:
            if attempt >= 5:
                raise
"""
import asyncio
from typing import AsyncIterator, Tuple


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[Tuple[int, float]]:
    delay = min(initial_delay, max_delay)
    for attempt in range(1, max_attempts + 1):
        yield attempt, delay
        if attempt < max_attempts:
            await asyncio.sleep(delay)
            delay = min(delay * multiplier, max_delay)
