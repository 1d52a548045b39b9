from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior on outbound calls."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("retry delays cannot be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")


class RateLimiter:
    """Simple fixed-delay rate limiter."""

    def __init__(self, delay_ms: int, sleep: Callable[[float], None] = time.sleep):
        self.delay_s = max(0, delay_ms) / 1000.0
        self._sleep = sleep

    def sleep(self) -> None:
        """Sleep for the configured delay."""
        if self.delay_s > 0:
            self._sleep(self.delay_s)


def backoff_delay_ms(policy: RetryPolicy, attempt: int) -> float:
    """Delay after the given failed attempt (1-based), capped at max_delay_ms."""
    delay = policy.initial_delay_ms * (policy.multiplier ** (attempt - 1))
    return min(delay, policy.max_delay_ms)
