"""
equilibria.engine.game_stats — Per-Game Win Rate & House Edge
==============================================================

Turns raw aggregates (games, wins, wagered, won) into ratios.  A game with
no recorded plays or no recorded wager is *absent* from the result: callers
treat a missing key as "insufficient data", never as "healthy".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

__all__ = [
    "GameAggregate",
    "GameRatio",
    "average_house_edge",
    "compute_game_ratio",
    "compute_game_ratios",
]


@dataclass(frozen=True, slots=True)
class GameAggregate:
    """Lifetime totals for one game (or game variant)."""

    game_id: str
    total_games: int
    total_wins: int
    total_wagered: float
    total_won: float


@dataclass(frozen=True, slots=True)
class GameRatio:
    """Derived ratios for one game.  Percentages are 0–100."""

    game_id: str
    total_games: int
    win_rate: float
    house_edge: float
    avg_bet: float
    profit_per_game: float
    total_profit: float


def compute_game_ratio(agg: GameAggregate) -> GameRatio | None:
    """Return ratios for *agg*, or None when there is nothing to measure."""
    if agg.total_games <= 0 or agg.total_wagered <= 0:
        return None
    profit = agg.total_wagered - agg.total_won
    return GameRatio(
        game_id=agg.game_id,
        total_games=agg.total_games,
        win_rate=agg.total_wins / agg.total_games * 100,
        house_edge=profit / agg.total_wagered * 100,
        avg_bet=agg.total_wagered / agg.total_games,
        profit_per_game=profit / agg.total_games,
        total_profit=profit,
    )


def compute_game_ratios(
    aggregates: Mapping[str, GameAggregate],
) -> dict[str, GameRatio]:
    """Ratios keyed by game id, omitting games without plays or wagers."""
    ratios: dict[str, GameRatio] = {}
    for game_id, agg in aggregates.items():
        ratio = compute_game_ratio(agg)
        if ratio is not None:
            ratios[game_id] = ratio
    return ratios


def average_house_edge(
    ratios: Mapping[str, GameRatio], min_games: int = 10
) -> float | None:
    """Mean house edge over games with more than *min_games* plays.

    Returns None when no game has enough data.
    """
    edges = [r.house_edge for r in ratios.values() if r.total_games > min_games]
    if not edges:
        return None
    return sum(edges) / len(edges)
