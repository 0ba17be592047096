from __future__ import annotations

import random


def compute_backoff(
    attempt: int, base: float = 2.0, initial: float = 1.0, jitter: float = 0.5
) -> float:
    """Compute exponential backoff with jitter.

    ``attempt`` is 1-based: the first retry waits ``initial`` seconds, each
    following retry multiplies the delay by ``base``.
    """
    delay = initial * base ** max(attempt - 1, 0)
    return delay + random.uniform(0, jitter)
