"""
Backoff configuration for resilient upstream calls.
"""

import random
from typing import Callable


class RetryConfig:
    """Configuration for retry behavior.

    Delays are in seconds. The default schedule is capped exponential growth
    (0.25s, 0.5s, 1s, 2s, 2s, ...) plus up to 100ms of additive jitter.
    """

    def __init__(self,
                 base_delay: float = 0.25,
                 max_delay: float = 2.0,
                 exponential_base: float = 2.0,
                 jitter: float = 0.1):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


def calculate_delay(attempt: int, config: RetryConfig,
                    rand: Callable[[float, float], float] = random.uniform) -> float:
    """Calculate the sleep before retrying a zero-based ``attempt``."""
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)

    if config.jitter > 0:
        delay += rand(0.0, config.jitter)

    return max(0.0, delay)


def is_retryable_status(status_code: int) -> bool:
    """Server errors and 429 are worth another attempt."""
    return status_code >= 500 or status_code == 429
