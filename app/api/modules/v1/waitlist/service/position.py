import random
from typing import Optional

# (upper bound of base position, min adjustment, max adjustment)
POSITION_BANDS = (
    (100, -5, 15),
    (500, -20, 50),
    (2000, -100, 200),
)
OVERFLOW_BAND = (-500, 1000)


def adjustment_range(base_position: int) -> tuple[int, int]:
    for upper, low, high in POSITION_BANDS:
        if base_position <= upper:
            return low, high
    return OVERFLOW_BAND


def assign_position(base_count: int, rng: Optional[random.Random] = None) -> int:
    """
    Pick a queue position for a new signup.

    The position is drawn around ``base_count + 1`` with a band that widens as
    the queue grows, so consecutive signups cannot infer the exact total.

    Args:
        base_count: Current advisory number of entries.
        rng: Random source, injectable for tests.

    Returns:
        Position, never below 1.
    """
    rng = rng or random
    base_position = max(base_count, 0) + 1
    low, high = adjustment_range(base_position)
    return max(1, base_position + rng.randint(low, high))
