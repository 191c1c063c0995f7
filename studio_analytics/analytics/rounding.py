"""Fixed output precision for every numeric field of the dashboard payload.

Currency is reported to 2 decimals, percentages and months to 1 decimal.
``floor(x * 10**d + 0.5) / 10**d`` matches the legacy dashboard's rounding
bit for bit (half rounds up, float artefacts included), which keeps responses
diffable against it. Python's ``round`` uses banker's rounding and does not.
"""

import math


def round_half_up(value: float, digits: int) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def round2(value: float) -> float:
    return round_half_up(value, 2)


def round1(value: float) -> float:
    return round_half_up(value, 1)


def pct(numerator: float, denominator: float) -> float:
    """Percentage to 1 decimal, 0 when the denominator is empty."""
    if denominator <= 0:
        return 0.0
    return round1(numerator / denominator * 100)


def pct_or_none(numerator: float, denominator: float) -> float | None:
    if denominator <= 0:
        return None
    return round1(numerator / denominator * 100)
