import math
from collections.abc import Sequence
from typing import Protocol, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    """The slice of ``random.Random`` that simulations draw from; seed it in tests."""

    def choice(self, seq: Sequence[T]) -> T: ...


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolated percentile of an ascending sequence; 0.0 when empty.

    The rank is ``p/100 * (n - 1)``, so for 1..10 the 50th/85th/95th
    percentiles are 5.5, 8.65 and 9.55.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])
    rank = p / 100 * (n - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_values[lower])
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * (rank - lower)


def percentiles(values: Sequence[float], *ps: float) -> dict[float, float]:
    ordered = sorted(values)
    return {p: percentile(ordered, p) for p in ps}


def mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)
