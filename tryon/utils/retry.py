"""
Retry utilities with exponential backoff
"""

import random


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (starting at 1)"""
    delay = min(base_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random() * 0.5)
    return delay
