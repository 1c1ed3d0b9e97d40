"""
equilibria.services.game_stats_service — Per-Game Aggregates
=============================================================

Rolls ``game_results`` up into one :class:`GameAggregate` per game type.
Synchronous; call via ``run_db()``.
"""

from __future__ import annotations

from collections.abc import Collection

from sqlalchemy import Engine, case, func, select
from sqlalchemy.orm import Session

from equilibria.database.models import GameResult
from equilibria.engine.game_stats import GameAggregate


class GameStatsRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_aggregates(
        self,
        scope: int | None,
        *,
        exclude_user_ids: Collection[int] = (),
    ) -> dict[str, GameAggregate]:
        """Lifetime totals keyed by ``game_type`` for *scope* (None = global)."""
        stmt = select(
            GameResult.game_type,
            func.count(GameResult.id).label("games"),
            func.sum(case((GameResult.won.is_(True), 1), else_=0)).label("wins"),
            func.coalesce(func.sum(GameResult.bet_amount), 0).label("wagered"),
            func.coalesce(func.sum(GameResult.payout), 0).label("won"),
        ).group_by(GameResult.game_type)
        if scope is not None:
            stmt = stmt.where(GameResult.guild_id == scope)
        if exclude_user_ids:
            stmt = stmt.where(GameResult.user_id.not_in(list(exclude_user_ids)))

        with Session(self.engine) as session:
            rows = session.execute(stmt).all()

        return {
            row.game_type: GameAggregate(
                game_id=row.game_type,
                total_games=int(row.games),
                total_wins=int(row.wins or 0),
                total_wagered=float(row.wagered),
                total_won=float(row.won),
            )
            for row in rows
        }
