"""
equilibria.engine.analysis — AnalysisSnapshot & Recommendations
================================================================

The immutable result of one full analysis pass.  A snapshot is never
mutated; the next pass supersedes it with a fresh instance.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from equilibria.database.models import HealthLevel
from equilibria.engine.distribution import WealthBucket, bucket_balances
from equilibria.engine.game_stats import GameRatio

__all__ = [
    "AnalysisSnapshot",
    "Recommendation",
    "build_recommendations",
    "default_snapshot",
]

# Recommendation thresholds
POOR_SHARE_CRITICAL = 80.0   # % of accounts in the lowest bucket
EDGE_TOO_LOW = 2.0           # % house edge
EDGE_TOO_HIGH = 25.0


@dataclass(frozen=True, slots=True)
class Recommendation:
    """An operator-facing hint derived from a snapshot."""

    severity: str   # "CRITICAL" | "WARNING"
    category: str   # "WEALTH_DISTRIBUTION" | "GAME_BALANCE"
    message: str
    action: str
    game: str | None = None


@dataclass(frozen=True, slots=True)
class AnalysisSnapshot:
    """Population-level economic state at one point in time."""

    timestamp: float
    scope: int | None
    total_users: int
    total_wealth: float
    average_balance: float
    median_balance: float
    gini_index: float
    wealth_buckets: tuple[WealthBucket, ...]
    per_game_ratios: Mapping[str, GameRatio]
    health_level: HealthLevel
    health_score: int = 0
    inflation_rate: float = 0.0
    recommendations: tuple[Recommendation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.per_game_ratios, MappingProxyType):
            object.__setattr__(
                self, "per_game_ratios", MappingProxyType(dict(self.per_game_ratios))
            )

    @property
    def taken_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    def bucket(self, name: str) -> WealthBucket | None:
        for b in self.wealth_buckets:
            if b.name == name:
                return b
        return None

    @property
    def critical_recommendation_count(self) -> int:
        return sum(1 for r in self.recommendations if r.severity == "CRITICAL")


def build_recommendations(
    buckets: tuple[WealthBucket, ...],
    ratios: Mapping[str, GameRatio],
) -> tuple[Recommendation, ...]:
    """Derive operator hints from the distribution and per-game edges."""
    recs: list[Recommendation] = []

    if buckets and buckets[0].percentage > POOR_SHARE_CRITICAL:
        recs.append(Recommendation(
            severity="CRITICAL",
            category="WEALTH_DISTRIBUTION",
            message=(
                "Too many poor players - increase earning opportunities "
                "or reduce game difficulty"
            ),
            action="INCREASE_PAYOUTS",
        ))

    for game, ratio in sorted(ratios.items()):
        if ratio.house_edge < EDGE_TOO_LOW:
            recs.append(Recommendation(
                severity="WARNING",
                category="GAME_BALANCE",
                message=(
                    f"{game} house edge too low ({ratio.house_edge:.1f}%) "
                    "- players winning too much"
                ),
                action="REDUCE_MULTIPLIERS",
                game=game,
            ))
        elif ratio.house_edge > EDGE_TOO_HIGH:
            recs.append(Recommendation(
                severity="WARNING",
                category="GAME_BALANCE",
                message=(
                    f"{game} house edge too high ({ratio.house_edge:.1f}%) "
                    "- players losing too much"
                ),
                action="INCREASE_MULTIPLIERS",
                game=game,
            ))

    return tuple(recs)


def default_snapshot(timestamp: float, scope: int | None = None) -> AnalysisSnapshot:
    """Neutral snapshot used when account or game data is unavailable."""
    return AnalysisSnapshot(
        timestamp=timestamp,
        scope=scope,
        total_users=0,
        total_wealth=0.0,
        average_balance=0.0,
        median_balance=0.0,
        gini_index=0.0,
        wealth_buckets=bucket_balances([]),
        per_game_ratios={},
        health_level=HealthLevel.UNKNOWN,
    )
