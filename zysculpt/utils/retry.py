"""
RETRY UTILITY
=============

Awaits a coroutine factory and, if it raises, retries a few times with
exponential backoff. Used for the non-streaming Groq calls (sculpt, quiz,
roadmap) so temporary rate limits or network blips don't immediately fail the
request. Remote store writes are never retried: they are best-effort.

Example:
  text = await with_retry(lambda: llm.ainvoke(prompt), max_retries=3, initial_delay=1.0)
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger("Zysculpt")

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
) -> T:
    """
    Await fn(). If it raises, wait initial_delay seconds and try again; delay doubles each retry.
    After max_retries attempts (including the first), re-raise the last exception.
    fn is called again on every attempt, so it can pick a different API key each time.
    """
    delay = initial_delay

    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as e:
            if attempt == max_retries - 1:
                raise
            logger.warning(
                "Attempt %s/%s failed (%s). Retrying in %.1fs: %s",
                attempt + 1,
                max_retries,
                getattr(fn, "__name__", "call"),
                delay,
                e,
            )
            await asyncio.sleep(delay)
            delay *= 2  # Exponential backoff: 1s, 2s, 4s, ...

    raise ValueError("max_retries must be at least 1")
