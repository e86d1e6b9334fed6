"""
Small statistics helpers shared by the latency and queue monitors.
"""

import math
import statistics
from enum import Enum
from typing import Sequence


class Trend(Enum):
    """Direction of a metric over time."""
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


def percentile(values: Sequence[float], p: float) -> float:
    """
    Percentile with linear interpolation between order statistics.

    The rank is ``p/100 * (n-1)``; a fractional rank interpolates between
    the two neighbouring sorted values.

    Args:
        values: Samples, in any order
        p: Percentile in [0, 100]

    Returns:
        Interpolated percentile, 0.0 for an empty sequence
    """
    if not values:
        return 0.0

    ordered = sorted(values)
    index = (p / 100.0) * (len(ordered) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)

    if lower == upper:
        return float(ordered[int(index)])

    weight = index - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def population_std_dev(values: Sequence[float]) -> float:
    return statistics.pstdev(values) if len(values) > 1 else 0.0


def latency_trend(values: Sequence[float], window: int = 20, threshold: float = 0.1) -> Trend:
    """
    Compare the first ``window // 2`` of the most recent ``window`` samples
    with whatever follows them.

    Higher latency is worse, so a rise of more than ``threshold`` is
    degrading and a drop of more than ``threshold`` is improving. Without
    samples after the first half the trend is stable.
    """
    half = window // 2
    recent = list(values)[-window:]
    if len(recent) <= half:
        return Trend.STABLE

    first = mean(recent[:half])
    second = mean(recent[half:])

    if first == 0:
        return Trend.STABLE

    change = (second - first) / first
    if change > threshold:
        return Trend.DEGRADING
    if change < -threshold:
        return Trend.IMPROVING
    return Trend.STABLE


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (2.5 -> 3)."""
    return math.floor(value + 0.5)
