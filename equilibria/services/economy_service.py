"""
equilibria.services.economy_service — The Economy Analyzer
===========================================================

:class:`EconomyAnalyzer` is the one context object the rest of the bot
talks to.  It is built once at start-up and handed to the periodic driver
and to every game that reads payout multipliers; nothing looks it up
globally.

One cycle (:meth:`EconomyAnalyzer.run_cycle`)::

    run_full_analysis(scope)      accounts + game aggregates → snapshot → cache
          │
    scheduler.check(snapshot)     at most one intervention
          │
    multipliers.update_from_analysis(snapshot)   always runs

Data failures never escape: a repository error or an empty population
yields the neutral default snapshot (``UNKNOWN`` health), which is not
cached or stored, so the next call retries.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine

from equilibria.config import (
    AnalysisConfig,
    EconomyConfig,
    InterventionConfig,
    MultiplierConfig,
)
from equilibria.constants import format_coins
from equilibria.database.engine import run_db
from equilibria.database.models import EconomySnapshot, HealthLevel
from equilibria.engine.analysis import (
    AnalysisSnapshot,
    build_recommendations,
    default_snapshot,
)
from equilibria.engine.cache import AnalysisCache, scope_key
from equilibria.engine.distribution import analyze_distribution
from equilibria.engine.game_stats import compute_game_ratios
from equilibria.engine.health import HealthScorer
from equilibria.engine.interventions import InterventionOutcome
from equilibria.engine.multipliers import (
    MultiplierEngine,
    MultiplierValue,
    Schedule,
    thread_timer,
)
from equilibria.services.account_service import AccountRepository
from equilibria.services.game_stats_service import GameStatsRepository
from equilibria.services.history_service import SnapshotHistory, inflation_rate
from equilibria.services.intervention_service import Announce, InterventionScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HealthSummary:
    """Compact view over a snapshot for status displays."""

    health: HealthLevel
    health_score: int
    total_users: int
    average_balance: float
    total_wealth: float
    gini_index: float
    critical_recommendation_count: int


@dataclass(frozen=True, slots=True)
class CycleResult:
    snapshot: AnalysisSnapshot
    intervention: InterventionOutcome | None
    multiplier_factor: float | None


class EconomyAnalyzer:
    """Analysis, health, multipliers and interventions behind one object.

    Usage:
        economy = EconomyAnalyzer.from_config(cfg, engine)
        result = await economy.run_cycle(cfg.guild_id)
        payouts = economy.get_multipliers("plinko", "medium")
    """

    def __init__(
        self,
        accounts: AccountRepository,
        games: GameStatsRepository,
        *,
        history: SnapshotHistory | None = None,
        analysis: AnalysisConfig | None = None,
        multiplier_config: MultiplierConfig | None = None,
        intervention_config: InterventionConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        schedule: Schedule = thread_timer,
        announce: Announce | None = None,
    ) -> None:
        self.config = analysis or AnalysisConfig()
        self.accounts = accounts
        self.games = games
        self.history = history
        self.exempt_ids = frozenset(self.config.exempt_account_ids)
        self._clock = clock

        self.cache = AnalysisCache(self.config.cache_ttl_seconds, clock=clock)
        self.scorer = HealthScorer(
            min_games_for_edge=self.config.min_games_for_edge,
            hysteresis=self.config.health_hysteresis,
        )
        self.multipliers = MultiplierEngine(
            config=multiplier_config,
            min_games_for_edge=self.config.min_games_for_edge,
            clock=clock,
            schedule=schedule,
        )
        self.scheduler = InterventionScheduler(
            accounts,
            self.multipliers,
            config=intervention_config,
            exempt_ids=self.exempt_ids,
            rng=rng,
            clock=clock,
            announce=announce,
        )
        self._previous_levels: dict[str, HealthLevel] = {}

    @classmethod
    def from_config(cls, cfg: EconomyConfig, engine: Engine, **kwargs) -> EconomyAnalyzer:
        """Wire the SQLAlchemy repositories and the YAML tunables together."""
        return cls(
            AccountRepository(engine),
            GameStatsRepository(engine),
            history=SnapshotHistory(engine),
            analysis=cfg.analysis,
            multiplier_config=cfg.multipliers,
            intervention_config=cfg.interventions,
            **kwargs,
        )

    def attach_announcer(self, announce: Announce | None) -> None:
        self.scheduler.announce = announce

    # -------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------
    async def run_full_analysis(
        self, scope: int | None, *, force: bool = False
    ) -> AnalysisSnapshot:
        """Compute a fresh snapshot for *scope*, or return the cached one.

        The cached snapshot is returned while it is younger than the TTL
        unless *force* is set.
        """
        if not force:
            cached = self.cache.get(scope)
            if cached is not None:
                return cached

        now = self._clock()
        try:
            accounts = await run_db(self.accounts.list_accounts, scope)
            aggregates = await run_db(
                self.games.get_aggregates, scope, exclude_user_ids=self.exempt_ids
            )
        except Exception:
            logger.warning(
                "Economy data unavailable for scope %s — using default analysis",
                scope, exc_info=True,
            )
            return default_snapshot(now, scope)

        balances = [a.total for a in accounts if a.user_id not in self.exempt_ids]
        if not balances:
            logger.warning("No accounts in scope %s — using default analysis", scope)
            return default_snapshot(now, scope)

        distribution = analyze_distribution(balances, self.config.bucket_thresholds)
        ratios = compute_game_ratios(aggregates)
        inflation = await self._inflation(scope, distribution.average_balance, now)

        key = scope_key(scope)
        assessment = self.scorer.assess(
            distribution, ratios, inflation, previous=self._previous_levels.get(key)
        )
        self._previous_levels[key] = assessment.level

        snapshot = AnalysisSnapshot(
            timestamp=now,
            scope=scope,
            total_users=distribution.total_users,
            total_wealth=distribution.total_wealth,
            average_balance=distribution.average_balance,
            median_balance=distribution.median_balance,
            gini_index=distribution.gini_index,
            wealth_buckets=distribution.buckets,
            per_game_ratios=ratios,
            health_level=assessment.level,
            health_score=assessment.score,
            inflation_rate=inflation,
            recommendations=build_recommendations(distribution.buckets, ratios),
        )
        self.cache.put(snapshot)
        await self._record(snapshot)

        logger.info(
            "Economy analysis complete for scope %s: %s health (score %d), "
            "avg balance %s, %d users, gini %.3f",
            scope, snapshot.health_level, snapshot.health_score,
            format_coins(snapshot.average_balance), snapshot.total_users,
            snapshot.gini_index,
        )
        return snapshot

    async def get_analysis(self, scope: int | None) -> AnalysisSnapshot:
        """Cached snapshot if fresh, else a synchronous recompute."""
        return await self.run_full_analysis(scope)

    async def get_health_summary(self, scope: int | None) -> HealthSummary:
        snapshot = await self.get_analysis(scope)
        return HealthSummary(
            health=snapshot.health_level,
            health_score=snapshot.health_score,
            total_users=snapshot.total_users,
            average_balance=snapshot.average_balance,
            total_wealth=snapshot.total_wealth,
            gini_index=snapshot.gini_index,
            critical_recommendation_count=snapshot.critical_recommendation_count,
        )

    async def get_history(self, scope: int | None, limit: int = 24) -> list[EconomySnapshot]:
        if self.history is None:
            return []
        return await run_db(self.history.get_history, scope, limit)

    async def _inflation(self, scope: int | None, average: float, now: float) -> float:
        if self.history is None:
            return 0.0
        cutoff = datetime.fromtimestamp(now, tz=UTC) - timedelta(
            hours=self.config.inflation_window_hours
        )
        try:
            past = await run_db(self.history.average_balance_before, scope, cutoff)
        except Exception:
            logger.warning("Inflation baseline unavailable for scope %s", scope, exc_info=True)
            return 0.0
        return inflation_rate(average, past)

    async def _record(self, snapshot: AnalysisSnapshot) -> None:
        if self.history is None:
            return
        try:
            await run_db(self.history.record, snapshot)
        except Exception:
            logger.exception("Failed to store economy snapshot for scope %s", snapshot.scope)

    # -------------------------------------------------------------------
    # Interventions & multipliers
    # -------------------------------------------------------------------
    async def check_for_interventions(
        self, scope: int | None
    ) -> InterventionOutcome | None:
        snapshot = await self.get_analysis(scope)
        return await self.scheduler.check(snapshot)

    def get_multipliers(
        self, game: str, variant: str | None = None
    ) -> MultiplierValue | Mapping[str, MultiplierValue]:
        return self.multipliers.get_multipliers(game, variant)

    async def run_cycle(self, scope: int | None) -> CycleResult:
        """One periodic tick: analyse, maybe intervene, then retune multipliers."""
        snapshot = await self.run_full_analysis(scope, force=True)
        outcome = await self.scheduler.check(snapshot)
        factor = self.multipliers.update_from_analysis(snapshot)
        return CycleResult(snapshot=snapshot, intervention=outcome, multiplier_factor=factor)

    def shutdown(self) -> None:
        """Cancel pending override expiry.  Call from bot close."""
        self.multipliers.shutdown()
