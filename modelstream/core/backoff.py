"""Retry delay computation."""

import random

DEFAULT_RETRY_DELAY = 0.2
BACKOFF_FACTOR = 2.0
MAX_RETRY_DELAY = 10.0


def backoff(attempt: int, jitter: bool = True) -> float:
    """Return the delay in seconds before retrying ``attempt`` (1-based).

    The delay doubles with every attempt starting at ``DEFAULT_RETRY_DELAY``
    and never exceeds ``MAX_RETRY_DELAY``. Jitter scales the value by a
    random factor in [0.9, 1.1] before the cap is applied.
    """
    exponent = min(max(attempt, 1) - 1, 32)
    delay = DEFAULT_RETRY_DELAY * (BACKOFF_FACTOR ** exponent)
    if jitter:
        delay *= random.uniform(0.9, 1.1)
    return min(delay, MAX_RETRY_DELAY)
