"""
Bounded exponential backoff shared by broker connection and event publishing
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with an attempt cap.

    The delay before retry ``n`` (1-based, counting completed attempts) is
    ``base_delay * multiplier ** (n - 1)`` capped at ``max_delay``. With
    ``jitter`` enabled the delay is drawn uniformly from ``[0, delay]``.
    """
    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given number of failed attempts."""
        if attempt < 1:
            return 0.0
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay

    def can_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    async def wait(self, attempt: int, sleep: Sleep = asyncio.sleep) -> None:
        delay = self.delay_for(attempt)
        if delay > 0:
            await sleep(delay)

    @classmethod
    def for_broker_connect(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=config.BROKER_CONNECT_MAX_ATTEMPTS,
            base_delay=config.BROKER_CONNECT_BASE_DELAY,
            max_delay=config.BROKER_CONNECT_MAX_DELAY,
            jitter=True,
        )

    @classmethod
    def for_publish(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=config.PUBLISH_MAX_ATTEMPTS,
            base_delay=config.PUBLISH_BASE_DELAY,
            max_delay=config.PUBLISH_MAX_DELAY,
        )
