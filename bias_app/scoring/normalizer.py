"""
Score normalization: bounded raw score -> signed percentage -> direction.

Pure functions over ``Decimal`` so that sums and percentages are exact and
reproducible across the snapshot tree.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ..errors import DegenerateRangeError

HUNDRED = Decimal("100")
ZERO = Decimal("0")
PERCENT_QUANTUM = Decimal("0.01")

STRONG_THRESHOLD = Decimal("85")
TREND_THRESHOLD = Decimal("70")


class Direction(str, Enum):
    """Direction category derived from a bipolar percentage."""
    STRONG_BULL = "STRONG_BULL"
    BULL = "BULL"
    NEUTRAL = "NEUTRAL"
    BEAR = "BEAR"
    STRONG_BEAR = "STRONG_BEAR"


def to_decimal(value: Any) -> Decimal:
    """
    Convert a score-like value to Decimal.

    Floats go through ``str`` so that 0.1 becomes Decimal("0.1") rather than
    its binary expansion.
    """
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Score must be finite: {value!r}")
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a numeric score: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric score: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Score must be finite: {value!r}")
    return result


def bipolar_percentage(min_score: Any, max_score: Any, actual: Any) -> Decimal:
    """
    Normalize ``actual`` to [-100, 100] against separate negative/positive bounds.

    Non-negative scores are scaled by ``max_score``, negative scores by
    ``|min_score|``. The result is rounded half-up to two decimals.

    Raises:
        DegenerateRangeError: If the bound used for scaling is zero
    """
    min_d = to_decimal(min_score)
    max_d = to_decimal(max_score)
    actual_d = to_decimal(actual)

    if actual_d >= ZERO:
        bound = max_d
    else:
        bound = abs(min_d)

    if bound == ZERO:
        raise DegenerateRangeError(
            f"Zero-width bound for score {actual_d} (min={min_d}, max={max_d})",
            min_score=min_d,
            max_score=max_d,
            actual=actual_d,
        )

    return (actual_d * HUNDRED / bound).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def classify_direction(percentage: Any) -> Direction:
    """Map a bipolar percentage to its direction category."""
    pct = to_decimal(percentage)
    magnitude = abs(pct)

    if magnitude >= STRONG_THRESHOLD:
        return Direction.STRONG_BULL if pct >= ZERO else Direction.STRONG_BEAR
    if magnitude >= TREND_THRESHOLD:
        return Direction.BULL if pct >= ZERO else Direction.BEAR
    return Direction.NEUTRAL


def score_summary(min_score: Any, max_score: Any, actual: Any) -> tuple[Decimal, Direction]:
    """Percentage and direction for one (min, max, actual) triple."""
    percentage = bipolar_percentage(min_score, max_score, actual)
    return percentage, classify_direction(percentage)
