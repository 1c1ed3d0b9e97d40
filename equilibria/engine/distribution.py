"""
equilibria.engine.distribution — Wealth Statistics & Inequality
================================================================

Pure functions over a list of total balances (one per account).  Exempt
accounts are removed by the caller before anything here runs.

No Discord I/O, no DB I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from equilibria.constants import BUCKET_NAMES

__all__ = [
    "DEFAULT_BUCKET_THRESHOLDS",
    "DistributionStats",
    "WealthBucket",
    "analyze_distribution",
    "bucket_balances",
    "gini_index",
    "median",
]

DEFAULT_BUCKET_THRESHOLDS: tuple[int, int, int, int] = (
    50_000, 500_000, 2_000_000, 10_000_000,
)


@dataclass(frozen=True, slots=True)
class WealthBucket:
    """One band of the five-bucket wealth distribution."""

    name: str
    lower: float        # inclusive
    upper: float | None  # exclusive; None for the open top bucket
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class DistributionStats:
    """Population-level wealth statistics."""

    total_users: int
    total_wealth: float
    average_balance: float
    median_balance: float
    gini_index: float
    buckets: tuple[WealthBucket, ...]

    @property
    def lowest_bucket(self) -> WealthBucket:
        return self.buckets[0]


def median(sorted_values: Sequence[float]) -> float:
    """Median of an already-sorted sequence; mean of the middle pair on even length."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2:
        return float(sorted_values[mid])
    return (sorted_values[mid - 1] + sorted_values[mid]) / 2


def gini_index(balances: Sequence[float]) -> float:
    """Gini coefficient of *balances* (0 = perfectly equal, 1 = maximally unequal).

    Formula over ascending values with 1-based rank ``i``::

        G = Σ (2i − n − 1) · x[i]  /  (n · Σ x)

    An empty population or a zero total is defined as perfectly equal.
    """
    if not balances:
        return 0.0
    ordered = sorted(balances)
    n = len(ordered)
    total = sum(ordered)
    if total == 0:
        return 0.0

    weighted = 0.0
    for i, balance in enumerate(ordered, start=1):
        weighted += (2 * i - n - 1) * balance

    return max(0.0, min(1.0, weighted / (n * total)))


def bucket_balances(
    balances: Sequence[float],
    thresholds: Sequence[float] = DEFAULT_BUCKET_THRESHOLDS,
) -> tuple[WealthBucket, ...]:
    """Count balances into five non-overlapping buckets.

    With no balances at all the lowest bucket reports 100 % so the
    percentages still add up.
    """
    if len(thresholds) != len(BUCKET_NAMES) - 1:
        raise ValueError(
            f"Expected {len(BUCKET_NAMES) - 1} bucket thresholds, got {len(thresholds)}"
        )
    if list(thresholds) != sorted(thresholds):
        raise ValueError("Bucket thresholds must be ascending")

    counts = [0] * len(BUCKET_NAMES)
    for balance in balances:
        index = len(thresholds)
        for i, upper in enumerate(thresholds):
            if balance < upper:
                index = i
                break
        counts[index] += 1

    total = len(balances)
    bounds = [0.0, *thresholds]
    buckets = []
    for i, name in enumerate(BUCKET_NAMES):
        if total:
            pct = counts[i] / total * 100
        else:
            pct = 100.0 if i == 0 else 0.0
        buckets.append(WealthBucket(
            name=name,
            lower=bounds[i],
            upper=thresholds[i] if i < len(thresholds) else None,
            count=counts[i],
            percentage=pct,
        ))
    return tuple(buckets)


def analyze_distribution(
    balances: Sequence[float],
    thresholds: Sequence[float] = DEFAULT_BUCKET_THRESHOLDS,
) -> DistributionStats:
    """Compute totals, average, median, buckets, and Gini for *balances*.

    Empty input yields a zero-filled result, never an exception.
    """
    ordered = sorted(balances)
    n = len(ordered)
    total = float(sum(ordered))
    return DistributionStats(
        total_users=n,
        total_wealth=total,
        average_balance=total / n if n else 0.0,
        median_balance=median(ordered),
        gini_index=gini_index(ordered),
        buckets=bucket_balances(ordered, thresholds),
    )
