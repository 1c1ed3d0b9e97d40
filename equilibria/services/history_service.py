"""
equilibria.services.history_service — Stored Analysis History
==============================================================

Every computed (non-default) snapshot is appended to ``economy_snapshots``.
The history serves two readers:

- the inflation signal, which compares the current average balance with
  the newest stored snapshot at least one look-back window old;
- operators, through :meth:`SnapshotHistory.get_history`.

Synchronous; call via ``run_db()``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from equilibria.database.engine import get_session
from equilibria.database.models import EconomySnapshot
from equilibria.engine.analysis import AnalysisSnapshot

logger = logging.getLogger(__name__)


def _scope_filter(scope: int | None):
    if scope is None:
        return EconomySnapshot.guild_id.is_(None)
    return EconomySnapshot.guild_id == scope


def inflation_rate(current_average: float, past_average: float | None) -> float:
    """Percentage change of the average balance; 0 without a usable baseline."""
    if not past_average or past_average <= 0:
        return 0.0
    return (current_average - past_average) / past_average * 100


class SnapshotHistory:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, snapshot: AnalysisSnapshot) -> None:
        with get_session(self.engine) as session:
            session.add(EconomySnapshot(
                guild_id=snapshot.scope,
                taken_at=snapshot.taken_at,
                total_users=snapshot.total_users,
                total_wealth=int(snapshot.total_wealth),
                average_balance=snapshot.average_balance,
                median_balance=snapshot.median_balance,
                gini_index=snapshot.gini_index,
                health_level=str(snapshot.health_level),
                health_score=snapshot.health_score,
                inflation_rate=snapshot.inflation_rate,
            ))
        logger.debug("Recorded economy snapshot for scope %s", snapshot.scope)

    def average_balance_before(
        self, scope: int | None, cutoff: datetime
    ) -> float | None:
        """Average balance of the newest snapshot taken at or before *cutoff*."""
        stmt = (
            select(EconomySnapshot.average_balance)
            .where(_scope_filter(scope), EconomySnapshot.taken_at <= cutoff)
            .order_by(EconomySnapshot.taken_at.desc())
            .limit(1)
        )
        with Session(self.engine) as session:
            return session.scalar(stmt)

    def get_history(self, scope: int | None, limit: int = 24) -> list[EconomySnapshot]:
        """Most recent stored snapshots for *scope*, newest first."""
        stmt = (
            select(EconomySnapshot)
            .where(_scope_filter(scope))
            .order_by(EconomySnapshot.taken_at.desc(), EconomySnapshot.id.desc())
            .limit(limit)
        )
        with Session(self.engine, expire_on_commit=False) as session:
            rows = list(session.scalars(stmt).all())
            for row in rows:
                session.expunge(row)
        return rows
