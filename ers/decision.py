from __future__ import annotations

import random

SAMPLE_SPACE = 1000


def draw_sample(rng: random.Random) -> int:
    return rng.randrange(SAMPLE_SPACE)


def should_fail(rate: float, sample: int) -> bool:
    """Decide whether one request fails.

    ``sample`` is uniform in [0, SAMPLE_SPACE). The comparison is inclusive,
    so a rate of 0 still fails when the sample is 0 (a 1/1000 bias) and any
    rate >= 1 fails every time. Out-of-range rates are not rejected.
    """
    return sample <= rate * SAMPLE_SPACE
