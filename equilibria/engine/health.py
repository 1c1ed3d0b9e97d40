"""
equilibria.engine.health — Weighted Economic Health Score
==========================================================

Four capped factors are summed into a 0–100 score:

=====================  =====  ==============================================
Factor                 Cap    Rule (stepped)
=====================  =====  ==============================================
Distribution           30     share of accounts in the lowest wealth bucket
Average house edge     40     5–15 % best; far below zero or very high → 0
Population             20     100+, 50+, 20+, 5+ accounts
Inflation              10     lower observed inflation → more points
=====================  =====  ==============================================

The score maps to a :class:`HealthLevel` band.  Without hysteresis the band
is a direct function of the score; with a positive ``hysteresis`` margin a
change away from the previous level must clear the boundary by that margin.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from equilibria.database.models import HealthLevel
from equilibria.engine.distribution import DistributionStats
from equilibria.engine.game_stats import GameRatio, average_house_edge

__all__ = [
    "HealthAssessment",
    "HealthScorer",
    "classify_score",
    "distribution_points",
    "house_edge_points",
    "inflation_points",
    "level_for_score",
    "population_points",
]

# Minimum score per level, best first; anything lower is CRITICAL
LEVEL_FLOORS: tuple[tuple[HealthLevel, int], ...] = (
    (HealthLevel.EXCELLENT, 80),
    (HealthLevel.GOOD, 65),
    (HealthLevel.FAIR, 50),
    (HealthLevel.POOR, 35),
)

_RANK: dict[HealthLevel, int] = {
    HealthLevel.EXCELLENT: 0,
    HealthLevel.GOOD: 1,
    HealthLevel.FAIR: 2,
    HealthLevel.POOR: 3,
    HealthLevel.CRITICAL: 4,
}


# ---------------------------------------------------------------------------
# Factor scoring
# ---------------------------------------------------------------------------
def distribution_points(lowest_bucket_pct: float) -> int:
    """Fewer accounts in the lowest bucket → more points (max 30)."""
    if lowest_bucket_pct < 60:
        return 30
    if lowest_bucket_pct < 75:
        return 20
    if lowest_bucket_pct < 85:
        return 10
    return 0


def house_edge_points(avg_edge: float | None) -> int:
    """Healthy house edge (5–15 %) scores highest (max 40).

    ``None`` (no game with enough data) scores nothing.
    """
    if avg_edge is None:
        return 0
    if 5 <= avg_edge <= 15:
        return 40
    if 2 <= avg_edge < 5 or 15 < avg_edge <= 25:
        return 25
    if 0 <= avg_edge < 2 or 25 < avg_edge <= 40:
        return 15
    if -5 <= avg_edge < 0:
        return 5
    return 0


def population_points(total_users: int) -> int:
    """More accounts → more points (max 20)."""
    if total_users >= 100:
        return 20
    if total_users >= 50:
        return 15
    if total_users >= 20:
        return 10
    if total_users >= 5:
        return 5
    return 0


def inflation_points(inflation_rate: float) -> int:
    """Lower inflation → more points (max 10)."""
    if inflation_rate < 5:
        return 10
    if inflation_rate < 15:
        return 5
    return 0


# ---------------------------------------------------------------------------
# Banding
# ---------------------------------------------------------------------------
def level_for_score(score: float) -> HealthLevel:
    for level, floor in LEVEL_FLOORS:
        if score >= floor:
            return level
    return HealthLevel.CRITICAL


def classify_score(
    score: float,
    previous: HealthLevel | None = None,
    hysteresis: float = 0.0,
) -> HealthLevel:
    """Map *score* to a level, optionally damped against *previous*.

    An improvement is only accepted if it still holds at ``score - hysteresis``;
    a decline only if it still holds at ``score + hysteresis``.
    """
    raw = level_for_score(score)
    if (
        previous is None
        or previous not in _RANK
        or hysteresis <= 0
        or raw == previous
    ):
        return raw

    if _RANK[raw] < _RANK[previous]:
        candidate = level_for_score(score - hysteresis)
        return candidate if _RANK[candidate] < _RANK[previous] else previous

    candidate = level_for_score(score + hysteresis)
    return candidate if _RANK[candidate] > _RANK[previous] else previous


# ---------------------------------------------------------------------------
# HealthScorer
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class HealthAssessment:
    """Score breakdown and resulting level."""

    score: int
    level: HealthLevel
    distribution_points: int
    house_edge_points: int
    population_points: int
    inflation_points: int
    average_house_edge: float | None


class HealthScorer:
    """Combines distribution, house edge, population, and inflation signals."""

    def __init__(self, *, min_games_for_edge: int = 10, hysteresis: float = 0.0) -> None:
        self.min_games_for_edge = min_games_for_edge
        self.hysteresis = hysteresis

    def assess(
        self,
        distribution: DistributionStats,
        ratios: Mapping[str, GameRatio],
        inflation_rate: float,
        previous: HealthLevel | None = None,
    ) -> HealthAssessment:
        avg_edge = average_house_edge(ratios, self.min_games_for_edge)
        dist_pts = distribution_points(distribution.lowest_bucket.percentage)
        edge_pts = house_edge_points(avg_edge)
        pop_pts = population_points(distribution.total_users)
        infl_pts = inflation_points(inflation_rate)
        score = dist_pts + edge_pts + pop_pts + infl_pts
        return HealthAssessment(
            score=score,
            level=classify_score(score, previous, self.hysteresis),
            distribution_points=dist_pts,
            house_edge_points=edge_pts,
            population_points=pop_pts,
            inflation_points=infl_pts,
            average_house_edge=avg_edge,
        )
