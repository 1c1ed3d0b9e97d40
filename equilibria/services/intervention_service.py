"""
equilibria.services.intervention_service — Intervention Scheduler
==================================================================

Runs at most one intervention per check, per scope:

1. :func:`~equilibria.engine.interventions.eligible_interventions` picks the
   candidates whose thresholds and cooldowns pass (contraction → stimulus →
   wealth tax).
2. The rolling daily cap is enforced across all three kinds.
3. The chosen intervention reads the scope's accounts, plans its deltas,
   applies them through the account repository, and installs its temporary
   multiplier override.
4. Cooldown and cap bookkeeping is recorded, then the outcome is announced.

A write failure on one account is logged and counted; the intervention is
still considered triggered.  Outcome totals count only the writes that
landed, and a wealth tax pays out no more than it actually collected.
A failure before any write (the account read) makes the check a no-op
that retries on the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Collection

from sqlalchemy.exc import SQLAlchemyError

from equilibria.config import InterventionConfig
from equilibria.constants import format_coins
from equilibria.database.engine import run_db
from equilibria.database.models import InterventionKind
from equilibria.engine.analysis import AnalysisSnapshot
from equilibria.engine.cache import scope_key
from equilibria.engine.interventions import (
    TOP_HOLDER_COUNT,
    Account,
    InterventionOutcome,
    InterventionState,
    cap_exhausted,
    draw_contraction_rate,
    draw_stimulus_amount,
    eligible_interventions,
    plan_contraction,
    plan_redistribution,
    plan_stimulus,
    plan_wealth_tax,
)
from equilibria.engine.multipliers import MultiplierEngine
from equilibria.services.account_service import AccountRepository

logger = logging.getLogger(__name__)

Announce = Callable[[InterventionOutcome], Awaitable[object]]


class InterventionScheduler:
    """Cooldown- and cap-gated interventions over the account population.

    Usage:
        scheduler = InterventionScheduler(accounts, multipliers, config=cfg.interventions)
        outcome = await scheduler.check(snapshot)   # None when nothing fired
    """

    def __init__(
        self,
        accounts: AccountRepository,
        multipliers: MultiplierEngine,
        *,
        config: InterventionConfig | None = None,
        exempt_ids: Collection[int] = frozenset(),
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        announce: Announce | None = None,
    ) -> None:
        self.accounts = accounts
        self.multipliers = multipliers
        self.config = config or InterventionConfig()
        self.exempt_ids = frozenset(exempt_ids)
        self.rng = rng or random.Random()
        self.announce = announce
        self._clock = clock
        self._states: dict[str, InterventionState] = {}
        self._lock = asyncio.Lock()

    def state_for(self, scope: int | None) -> InterventionState:
        return self._states.setdefault(scope_key(scope), InterventionState())

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    async def check(self, snapshot: AnalysisSnapshot) -> InterventionOutcome | None:
        """Fire the first due intervention for the snapshot's scope, if any."""
        async with self._lock:
            cfg = self.config
            now = self._clock()
            state = self.state_for(snapshot.scope)

            kinds = eligible_interventions(snapshot, state, now, cfg)
            if not kinds:
                return None
            if cap_exhausted(state, now, cfg):
                logger.warning(
                    "%s blocked for scope %s — %d interventions in the last %.0fh",
                    kinds[0], snapshot.scope, cfg.daily_event_cap, cfg.cap_window_hours,
                )
                return None

            kind = kinds[0]
            try:
                accounts = await run_db(self.accounts.list_accounts, snapshot.scope)
            except SQLAlchemyError:
                logger.exception(
                    "Could not read accounts for %s in scope %s — skipped",
                    kind, snapshot.scope,
                )
                return None
            accounts = [a for a in accounts if a.user_id not in self.exempt_ids]

            if kind is InterventionKind.CONTRACTION:
                outcome = await self._contract(snapshot, accounts, now)
            elif kind is InterventionKind.STIMULUS:
                outcome = await self._stimulate(snapshot, accounts, now)
            else:
                outcome = await self._tax(snapshot, accounts, now)

            if outcome is None:
                return None
            state.record(kind, now, cfg)

        if self.announce is not None:
            try:
                await self.announce(outcome)
            except Exception:
                logger.exception("Announcement of %s failed", outcome.kind)
        return outcome

    # -------------------------------------------------------------------
    # Interventions
    # -------------------------------------------------------------------
    async def _contract(
        self, snapshot: AnalysisSnapshot, accounts: list[Account], now: float
    ) -> InterventionOutcome:
        cfg = self.config
        rate = draw_contraction_rate(self.rng, cfg.contraction_rate_band)
        logger.warning(
            "Market contraction triggered for scope %s: %.1f%% off balances of %s+",
            snapshot.scope, rate * 100, format_coins(cfg.contraction_floor),
        )

        changes = plan_contraction(accounts, rate, cfg.contraction_floor)
        report = await run_db(self.accounts.apply_changes, changes)
        self.multipliers.apply_override(
            cfg.contraction_multiplier,
            cfg.contraction_duration_minutes * 60,
            reason="contraction",
        )

        removed = -report.total
        logger.warning(
            "Market contraction completed: %s removed from %d accounts (%d failed)",
            format_coins(removed), len(report.applied), report.failed,
        )
        return InterventionOutcome(
            kind=InterventionKind.CONTRACTION,
            scope=snapshot.scope,
            triggered_at=now,
            gini_index=snapshot.gini_index,
            affected_accounts=len(report.applied),
            total_amount=removed,
            rate=rate,
            multiplier_factor=cfg.contraction_multiplier,
            multiplier_minutes=cfg.contraction_duration_minutes,
            top_accounts=tuple(report.applied[:TOP_HOLDER_COUNT]),
            failed_writes=report.failed,
        )

    async def _stimulate(
        self, snapshot: AnalysisSnapshot, accounts: list[Account], now: float
    ) -> InterventionOutcome:
        cfg = self.config
        amount = draw_stimulus_amount(self.rng, cfg.stimulus_amount_band)
        logger.info(
            "Economic stimulus triggered for scope %s: %s per account under %s",
            snapshot.scope, format_coins(amount), format_coins(cfg.stimulus_ceiling),
        )

        changes = plan_stimulus(accounts, amount, cfg.stimulus_ceiling)
        report = await run_db(self.accounts.apply_changes, changes)
        self.multipliers.apply_override(
            cfg.stimulus_multiplier,
            cfg.stimulus_duration_minutes * 60,
            reason="stimulus",
        )

        logger.info(
            "Economic stimulus completed: %s distributed to %d accounts (%d failed)",
            format_coins(report.total), len(report.applied), report.failed,
        )
        return InterventionOutcome(
            kind=InterventionKind.STIMULUS,
            scope=snapshot.scope,
            triggered_at=now,
            gini_index=snapshot.gini_index,
            affected_accounts=len(report.applied),
            total_amount=report.total,
            per_account_amount=amount,
            multiplier_factor=cfg.stimulus_multiplier,
            multiplier_minutes=cfg.stimulus_duration_minutes,
            failed_writes=report.failed,
        )

    async def _tax(
        self, snapshot: AnalysisSnapshot, accounts: list[Account], now: float
    ) -> InterventionOutcome | None:
        cfg = self.config
        changes = plan_wealth_tax(accounts, cfg.tax_brackets)
        if not changes:
            logger.debug("Wealth tax due for scope %s but nobody is taxable", snapshot.scope)
            return None

        logger.info("Processing progressive wealth tax for scope %s", snapshot.scope)
        taxed = await run_db(self.accounts.apply_changes, changes)
        # Only coins that actually left an account may be paid out
        collected = -taxed.total
        if collected <= 0:
            logger.warning(
                "Wealth tax for scope %s collected nothing (%d failed writes)",
                snapshot.scope, taxed.failed,
            )
            return None

        redistribution = plan_redistribution(
            accounts, collected, cfg.redistribution_ceiling, cfg.redistribution_cap
        )
        paid = await run_db(self.accounts.apply_changes, redistribution.changes)
        distributed = paid.total
        undistributed = collected - distributed

        logger.info(
            "Wealth tax collected: %s from %d accounts; %s each to %d accounts",
            format_coins(collected), len(taxed.applied),
            format_coins(redistribution.per_account), len(paid.applied),
        )
        if undistributed > 0:
            logger.warning(
                "Wealth tax left %s undistributed (per-account cap %s)",
                format_coins(undistributed), format_coins(cfg.redistribution_cap),
            )
        return InterventionOutcome(
            kind=InterventionKind.WEALTH_TAX,
            scope=snapshot.scope,
            triggered_at=now,
            gini_index=snapshot.gini_index,
            affected_accounts=len(taxed.applied),
            total_amount=collected,
            per_account_amount=redistribution.per_account,
            recipients=len(paid.applied),
            total_distributed=distributed,
            undistributed=undistributed,
            failed_writes=taxed.failed + paid.failed,
        )
