"""
equilibria.engine.interventions — Eligibility Rules & Balance Planning
=======================================================================

Pure functions behind the three stabilising interventions.  Nothing here
touches the database, Discord, or a clock of its own:

- :func:`choose_intervention` decides which (if any) intervention is due,
  given a snapshot, the scope's :class:`InterventionState`, and ``now``.
- ``plan_*`` functions turn a list of :class:`Account` records into
  :class:`BalanceChange` deltas that the account repository applies.

Order of precedence within one cycle: contraction → stimulus → wealth tax.
"""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from equilibria.config import InterventionConfig
from equilibria.database.models import HealthLevel, InterventionKind
from equilibria.engine.analysis import AnalysisSnapshot

HOUR = 3600.0

# Number of largest affected accounts reported for a contraction
TOP_HOLDER_COUNT = 3


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Account:
    """One balance record as read from the account repository."""

    user_id: int
    guild_id: int
    wallet: int
    bank: int

    @property
    def total(self) -> int:
        return self.wallet + self.bank


@dataclass(frozen=True, slots=True)
class BalanceChange:
    """Signed wallet/bank deltas for one account (negative = debit)."""

    account: Account
    wallet_delta: int = 0
    bank_delta: int = 0

    @property
    def delta(self) -> int:
        return self.wallet_delta + self.bank_delta


@dataclass(frozen=True, slots=True)
class RedistributionResult:
    changes: tuple[BalanceChange, ...]
    per_account: int
    total_collected: int
    total_distributed: int
    undistributed: int

    @property
    def recipients(self) -> int:
        return len(self.changes)


@dataclass(frozen=True, slots=True)
class InterventionOutcome:
    """Structured summary of one triggered intervention."""

    kind: InterventionKind
    scope: int | None
    triggered_at: float
    gini_index: float
    affected_accounts: int
    # Removed (contraction), injected (stimulus) or collected (wealth tax)
    total_amount: int
    rate: float | None = None            # contraction loss rate
    per_account_amount: int = 0          # stimulus amount / redistribution share
    multiplier_factor: float | None = None
    multiplier_minutes: float = 0.0
    top_accounts: tuple[BalanceChange, ...] = ()
    recipients: int = 0
    total_distributed: int = 0
    undistributed: int = 0
    failed_writes: int = 0


# ---------------------------------------------------------------------------
# Per-scope state
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class InterventionState:
    """Cooldown timestamps and the rolling event window for one scope.

    Only the scheduler mutates this; nothing outside the engine reads it.
    """

    last_contraction: float | None = None
    last_stimulus: float | None = None
    last_wealth_tax: float | None = None
    tax_latched_until: float = 0.0
    recent_events: deque[float] = field(default_factory=deque)

    def last_triggered(self, kind: InterventionKind) -> float | None:
        return {
            InterventionKind.CONTRACTION: self.last_contraction,
            InterventionKind.STIMULUS: self.last_stimulus,
            InterventionKind.WEALTH_TAX: self.last_wealth_tax,
        }[kind]

    def events_in_window(self, now: float, window_seconds: float) -> int:
        """Drop events older than the rolling window and count the rest."""
        while self.recent_events and now - self.recent_events[0] >= window_seconds:
            self.recent_events.popleft()
        return len(self.recent_events)

    def count_reset_at(self, window_seconds: float) -> float | None:
        """When the oldest counted event leaves the window (None if empty)."""
        if not self.recent_events:
            return None
        return self.recent_events[0] + window_seconds

    def record(self, kind: InterventionKind, now: float, cfg: InterventionConfig) -> None:
        if kind is InterventionKind.CONTRACTION:
            self.last_contraction = now
        elif kind is InterventionKind.STIMULUS:
            self.last_stimulus = now
        else:
            self.last_wealth_tax = now
            self.tax_latched_until = now + cfg.tax_latch_hours * HOUR
        self.recent_events.append(now)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
def _cooled_down(last: float | None, now: float, hours: float) -> bool:
    return last is None or now - last >= hours * HOUR


def eligible_interventions(
    snapshot: AnalysisSnapshot,
    state: InterventionState,
    now: float,
    cfg: InterventionConfig,
) -> list[InterventionKind]:
    """Interventions whose thresholds and cooldowns pass, in firing order.

    The daily cap is not considered here; see :func:`choose_intervention`.
    """
    if snapshot.health_level is HealthLevel.UNKNOWN:
        return []

    kinds: list[InterventionKind] = []
    gini = snapshot.gini_index

    if (
        snapshot.health_level is HealthLevel.EXCELLENT
        and gini > cfg.contraction_gini_threshold
        and _cooled_down(state.last_contraction, now, cfg.contraction_cooldown_hours)
    ):
        kinds.append(InterventionKind.CONTRACTION)

    if (
        snapshot.health_level in cfg.stimulus_health_levels
        and _cooled_down(state.last_stimulus, now, cfg.stimulus_cooldown_hours)
    ):
        kinds.append(InterventionKind.STIMULUS)

    if (
        gini > cfg.tax_gini_threshold
        and now >= state.tax_latched_until
        and _cooled_down(state.last_wealth_tax, now, cfg.tax_cooldown_hours)
    ):
        kinds.append(InterventionKind.WEALTH_TAX)

    return kinds


def cap_exhausted(state: InterventionState, now: float, cfg: InterventionConfig) -> bool:
    return state.events_in_window(now, cfg.cap_window_hours * HOUR) >= cfg.daily_event_cap


def choose_intervention(
    snapshot: AnalysisSnapshot,
    state: InterventionState,
    now: float,
    cfg: InterventionConfig,
) -> InterventionKind | None:
    """The single intervention to fire this cycle, or None."""
    if cap_exhausted(state, now, cfg):
        return None
    kinds = eligible_interventions(snapshot, state, now, cfg)
    return kinds[0] if kinds else None


# ---------------------------------------------------------------------------
# Magnitude draws
# ---------------------------------------------------------------------------
def draw_contraction_rate(rng: random.Random, band: tuple[float, float]) -> float:
    low, high = band
    return rng.uniform(low, high)


def draw_stimulus_amount(rng: random.Random, band: tuple[int, int]) -> int:
    low, high = band
    return int(rng.uniform(low, high))


# ---------------------------------------------------------------------------
# Balance planning
# ---------------------------------------------------------------------------
def plan_contraction(
    accounts: Iterable[Account], rate: float, floor: int
) -> list[BalanceChange]:
    """Debit ``rate`` of the total balance of every account at or above *floor*.

    Wallet is debited first, the remainder from the bank.  Largest accounts
    come first in the result.
    """
    changes: list[BalanceChange] = []
    wealthy = sorted(
        (a for a in accounts if a.total >= floor), key=lambda a: a.total, reverse=True
    )
    for account in wealthy:
        loss = int(account.total * rate)
        from_wallet = min(loss, max(account.wallet, 0))
        changes.append(BalanceChange(account, -from_wallet, -(loss - from_wallet)))
    return changes


def plan_stimulus(
    accounts: Iterable[Account], amount: int, ceiling: int
) -> list[BalanceChange]:
    """Credit a flat *amount* to the wallet of every account below *ceiling*."""
    return [BalanceChange(a, amount, 0) for a in accounts if a.total < ceiling]


def tax_rate_for(total: int, brackets: Sequence[tuple[int, float]]) -> float:
    """Rate of the highest bracket whose threshold *total* exceeds."""
    for threshold, rate in sorted(brackets, reverse=True):
        if total > threshold:
            return rate
    return 0.0


def plan_wealth_tax(
    accounts: Iterable[Account], brackets: Sequence[tuple[int, float]]
) -> list[BalanceChange]:
    """Progressive tax, debited bank-first then wallet."""
    changes: list[BalanceChange] = []
    for account in accounts:
        rate = tax_rate_for(account.total, brackets)
        if rate <= 0:
            continue
        tax = int(account.total * rate)
        if tax <= 0:
            continue
        from_bank = min(tax, max(account.bank, 0))
        changes.append(BalanceChange(account, -(tax - from_bank), -from_bank))
    return changes


def plan_redistribution(
    accounts: Iterable[Account], collected: int, ceiling: int, cap: int
) -> RedistributionResult:
    """Split *collected* equally across accounts below *ceiling*, capped per account.

    The share is ``floor(collected / recipients)``; whatever the cap or the
    rounding leaves behind is reported as ``undistributed``.
    """
    eligible = [a for a in accounts if a.total < ceiling]
    per_account = min(collected // len(eligible), cap) if eligible else 0
    changes = (
        tuple(BalanceChange(a, per_account, 0) for a in eligible)
        if per_account > 0 else ()
    )
    distributed = per_account * len(changes)
    return RedistributionResult(
        changes=changes,
        per_account=per_account,
        total_collected=collected,
        total_distributed=distributed,
        undistributed=collected - distributed,
    )
