"""Retry with exponential backoff, shared by TTS and storage calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from podcast_producer.constants import RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY

    def delays(self) -> list[float]:
        """Backoff delays between attempts: base, 2·base, 4·base, ..."""
        return [self.base_delay * (2 ** i) for i in range(self.max_attempts - 1)]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    is_retryable: Callable[[Exception], bool],
    delays: list[float],
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Await operation() until it succeeds or attempts run out.

    Non-retryable errors propagate immediately. After the last attempt the
    last retryable error is re-raised. delays[i] is awaited after attempt i+1.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt == max_attempts:
                raise
            delay = delays[min(attempt - 1, len(delays) - 1)] if delays else 0.0
            logger.warning(
                "%s failed (attempt %d/%d): %s - retrying in %.1fs",
                description, attempt, max_attempts, e, delay,
            )
            await (sleep or asyncio.sleep)(delay)
    raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
