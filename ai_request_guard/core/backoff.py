"""
Backoff delay calculation.

Exponential backoff with proportional jitter between retry attempts.
"""

import random
from typing import Callable


def calculate_backoff_delay(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    jitter_ratio: float = 0.3,
    rand: Callable[[], float] = random.random
) -> float:
    """Calculate the delay before the attempt following ``attempt``.

    The exponential term is capped at ``max_delay_ms`` and jitter adds up to
    ``jitter_ratio`` of it on top, so the worst case is
    ``max_delay_ms * (1 + jitter_ratio)``.

    Args:
        attempt: Index of the attempt that just failed (0-indexed)
        base_delay_ms: Delay before the first retry, without jitter
        max_delay_ms: Cap for the exponential term
        jitter_ratio: Upper bound of the jitter as a fraction of the delay
        rand: Source of uniform values in [0, 1)

    Returns:
        Delay in milliseconds

    Raises:
        ValueError: If attempt is negative
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")

    exponential = min(base_delay_ms * (2 ** attempt), max_delay_ms)
    jitter = rand() * jitter_ratio * exponential
    return exponential + jitter
