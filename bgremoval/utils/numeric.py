from __future__ import annotations

import math


def round_half_away_from_zero(value: float) -> int:
    """
    Round to the nearest integer, ties away from zero (153.5 -> 154).

    Python's built-in round() uses banker's rounding, which would turn
    767.5 into 768 but 1022.5 into 1022.
    """
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))
