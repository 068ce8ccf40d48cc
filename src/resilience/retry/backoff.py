"""
Exponential backoff with jitter.

    raw    = base_delay * multiplier ** (attempt - 1)
    jitter = rng() * 0.1 * raw            # up to +10%
    delay  = min(raw + jitter, max_delay)

All durations are in seconds. The random source is injectable so tests can pin it:

    calculate_delay(3, 0.1, 10.0, 2.0, rng=lambda: 0.0)   # -> 0.4
"""

import math
import random
from typing import Callable

from ..exceptions.base import InvalidBackoffError

JITTER_RATIO = 0.1


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    *,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Return the delay (seconds) to wait after failed attempt number `attempt` (1-based).

    Raises:
        InvalidBackoffError: attempt < 1, base_delay < 0, max_delay < 0, multiplier < 1, or
            max_delay == 0 while base_delay > 0 (the cap would erase the backoff).
    """
    if attempt < 1:
        raise InvalidBackoffError(f"attempt must be >= 1, got {attempt}")
    if base_delay < 0:
        raise InvalidBackoffError(f"base_delay must be >= 0, got {base_delay}")
    if max_delay < 0:
        raise InvalidBackoffError(f"max_delay must be >= 0, got {max_delay}")
    if max_delay == 0 and base_delay > 0:
        raise InvalidBackoffError(f"max_delay must be > 0 when base_delay is {base_delay}")
    if multiplier < 1:
        raise InvalidBackoffError(f"multiplier must be >= 1, got {multiplier}")

    try:
        raw = base_delay * multiplier ** (attempt - 1)
    except OverflowError:
        raw = math.inf

    if raw >= max_delay:
        return float(max_delay)

    jitter = rng() * JITTER_RATIO * raw
    return min(raw + jitter, max_delay)
