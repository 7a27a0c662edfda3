"""Delays between broker connection attempts.

RabbitMQTransport.connect iterates `exponential_backoff` and tries to connect
once per yielded delay. The generator sleeps before handing out the next delay,
so the caller just breaks out of the loop once a connection succeeds. The delay
grows by `multiplier` and is capped at `max_delay`. No more than `max_attempts`
delays are yielded.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)
