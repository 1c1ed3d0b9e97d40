"""
tests/test_interventions.py — Eligibility Rules & Balance Planning
===================================================================

Pure decision and planning logic: no I/O, no database.
"""

from __future__ import annotations

import random

import pytest
from conftest import make_snapshot

from equilibria.config import InterventionConfig
from equilibria.database.models import HealthLevel, InterventionKind
from equilibria.engine.interventions import (
    HOUR,
    Account,
    InterventionState,
    cap_exhausted,
    choose_intervention,
    draw_contraction_rate,
    draw_stimulus_amount,
    eligible_interventions,
    plan_contraction,
    plan_redistribution,
    plan_stimulus,
    plan_wealth_tax,
    tax_rate_for,
)

CFG = InterventionConfig()
NOW = 1_800_000_000.0


def _acct(user_id: int, wallet: int, bank: int = 0) -> Account:
    return Account(user_id=user_id, guild_id=1, wallet=wallet, bank=bank)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
class TestEligibility:
    def test_contraction_needs_excellent_and_inequality(self):
        state = InterventionState()
        hot = make_snapshot(health=HealthLevel.EXCELLENT, gini=0.72)
        assert choose_intervention(hot, state, NOW, CFG) is InterventionKind.CONTRACTION

        calm = make_snapshot(health=HealthLevel.EXCELLENT, gini=0.7)
        assert choose_intervention(calm, state, NOW, CFG) is None

    def test_stimulus_on_poor_health(self):
        snap = make_snapshot(health=HealthLevel.POOR, gini=0.1)
        assert choose_intervention(snap, InterventionState(), NOW, CFG) is InterventionKind.STIMULUS

    def test_stimulus_levels_are_configurable(self):
        cfg = InterventionConfig(stimulus_health_levels=("POOR", "CRITICAL"))
        snap = make_snapshot(health=HealthLevel.CRITICAL, gini=0.1)
        assert choose_intervention(snap, InterventionState(), NOW, CFG) is None
        assert choose_intervention(snap, InterventionState(), NOW, cfg) is InterventionKind.STIMULUS

    def test_wealth_tax_on_high_inequality(self):
        snap = make_snapshot(health=HealthLevel.FAIR, gini=0.8)
        assert choose_intervention(snap, InterventionState(), NOW, CFG) is InterventionKind.WEALTH_TAX

    def test_contraction_takes_precedence_over_tax(self):
        snap = make_snapshot(health=HealthLevel.EXCELLENT, gini=0.9)
        kinds = eligible_interventions(snap, InterventionState(), NOW, CFG)
        assert kinds == [InterventionKind.CONTRACTION, InterventionKind.WEALTH_TAX]
        assert choose_intervention(snap, InterventionState(), NOW, CFG) is InterventionKind.CONTRACTION

    def test_unknown_health_never_intervenes(self):
        snap = make_snapshot(health=HealthLevel.UNKNOWN, gini=0.95)
        assert eligible_interventions(snap, InterventionState(), NOW, CFG) == []


class TestCooldowns:
    def test_contraction_cooldown(self):
        snap = make_snapshot(health=HealthLevel.EXCELLENT, gini=0.72)
        state = InterventionState()
        state.record(InterventionKind.CONTRACTION, NOW, CFG)
        assert choose_intervention(snap, state, NOW + 2 * HOUR - 1, CFG) is None
        assert choose_intervention(snap, state, NOW + 2 * HOUR, CFG) is InterventionKind.CONTRACTION

    def test_stimulus_cooldown(self):
        snap = make_snapshot(health=HealthLevel.POOR, gini=0.1)
        state = InterventionState()
        state.record(InterventionKind.STIMULUS, NOW, CFG)
        assert choose_intervention(snap, state, NOW + 4 * HOUR - 1, CFG) is None
        assert choose_intervention(snap, state, NOW + 4 * HOUR, CFG) is InterventionKind.STIMULUS

    def test_tax_daily_latch_outlasts_cooldown(self):
        snap = make_snapshot(health=HealthLevel.FAIR, gini=0.8)
        state = InterventionState()
        state.record(InterventionKind.WEALTH_TAX, NOW, CFG)
        # Numeric cooldown (6h) passed, but the once-per-day latch holds
        assert choose_intervention(snap, state, NOW + 6 * HOUR, CFG) is None
        assert choose_intervention(snap, state, NOW + 24 * HOUR, CFG) is InterventionKind.WEALTH_TAX

    def test_cooldowns_are_independent(self):
        state = InterventionState()
        state.record(InterventionKind.CONTRACTION, NOW, CFG)
        snap = make_snapshot(health=HealthLevel.POOR, gini=0.1)
        assert choose_intervention(snap, state, NOW + 60, CFG) is InterventionKind.STIMULUS


class TestDailyCap:
    def test_cap_blocks_fourth_event(self):
        state = InterventionState()
        for i in range(3):
            state.record(InterventionKind.STIMULUS, NOW + i * HOUR, CFG)
        snap = make_snapshot(health=HealthLevel.FAIR, gini=0.8)
        assert cap_exhausted(state, NOW + 3 * HOUR, CFG)
        assert choose_intervention(snap, state, NOW + 3 * HOUR, CFG) is None

    def test_window_is_rolling(self):
        state = InterventionState()
        for t in (0, 10 * HOUR, 20 * HOUR):
            state.record(InterventionKind.STIMULUS, NOW + t, CFG)
        assert cap_exhausted(state, NOW + 24 * HOUR - 1, CFG)
        # The first event leaves the window; two remain
        assert not cap_exhausted(state, NOW + 24 * HOUR, CFG)
        assert state.events_in_window(NOW + 24 * HOUR, 24 * HOUR) == 2
        assert state.count_reset_at(24 * HOUR) == NOW + 34 * HOUR

    def test_cap_never_exceeded_in_any_window(self):
        rng = random.Random(7)
        state = InterventionState()
        fired: list[float] = []
        kinds = [HealthLevel.POOR, HealthLevel.EXCELLENT, HealthLevel.FAIR]
        now = NOW
        for _ in range(500):
            now += rng.uniform(0, 3 * HOUR)
            snap = make_snapshot(health=rng.choice(kinds), gini=rng.uniform(0.5, 0.95))
            kind = choose_intervention(snap, state, now, CFG)
            if kind is not None:
                state.record(kind, now, CFG)
                fired.append(now)
        assert fired
        for start in fired:
            in_window = [t for t in fired if start <= t < start + 24 * HOUR]
            assert len(in_window) <= CFG.daily_event_cap


# ---------------------------------------------------------------------------
# Magnitudes
# ---------------------------------------------------------------------------
class TestDraws:
    def test_contraction_rate_in_band(self):
        rng = random.Random(1)
        for _ in range(100):
            assert 0.05 <= draw_contraction_rate(rng, (0.05, 0.13)) <= 0.13

    def test_stimulus_amount_is_integer_in_band(self):
        rng = random.Random(1)
        for _ in range(100):
            amount = draw_stimulus_amount(rng, (25_000, 75_000))
            assert isinstance(amount, int)
            assert 25_000 <= amount <= 75_000

    def test_seeded_draws_are_reproducible(self):
        assert draw_contraction_rate(random.Random(42), (0.05, 0.13)) == \
            draw_contraction_rate(random.Random(42), (0.05, 0.13))


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------
class TestPlanContraction:
    def test_only_accounts_at_or_above_floor(self):
        accounts = [_acct(1, 6_500_000), _acct(2, 6_499_999), _acct(3, 1_000)]
        changes = plan_contraction(accounts, 0.10, 6_500_000)
        assert [c.account.user_id for c in changes] == [1]
        assert changes[0].delta == -650_000

    def test_wallet_first_then_bank(self):
        changes = plan_contraction([_acct(1, 100_000, 9_900_000)], 0.10, 6_500_000)
        assert changes[0].wallet_delta == -100_000
        assert changes[0].bank_delta == -900_000

    def test_largest_first(self):
        accounts = [_acct(1, 7_000_000), _acct(2, 60_000_000), _acct(3, 9_000_000)]
        changes = plan_contraction(accounts, 0.05, 6_500_000)
        assert [c.account.user_id for c in changes] == [2, 3, 1]


class TestPlanStimulus:
    def test_credits_wallet_below_ceiling(self):
        accounts = [_acct(1, 99_999), _acct(2, 100_000), _acct(3, 0)]
        changes = plan_stimulus(accounts, 30_000, 100_000)
        assert [c.account.user_id for c in changes] == [1, 3]
        assert all(c.wallet_delta == 30_000 and c.bank_delta == 0 for c in changes)


class TestWealthTax:
    @pytest.mark.parametrize(
        "total, rate",
        [
            (60_000_000, 0.025),
            (50_000_000, 0.015),
            (20_000_000, 0.015),
            (10_000_000, 0.01),
            (5_000_001, 0.01),
            (5_000_000, 0.0),
        ],
    )
    def test_brackets(self, total, rate):
        assert tax_rate_for(total, CFG.tax_brackets) == rate

    def test_bank_first_then_wallet(self):
        changes = plan_wealth_tax([_acct(1, 59_000_000, 1_000_000)], CFG.tax_brackets)
        assert changes[0].bank_delta == -1_000_000
        assert changes[0].wallet_delta == -500_000

    def test_untaxed_accounts_are_skipped(self):
        assert plan_wealth_tax([_acct(1, 4_000_000)], CFG.tax_brackets) == []


class TestRedistribution:
    def test_equal_share_capped(self):
        accounts = [_acct(i, 1_000) for i in range(9)] + [_acct(99, 60_000_000)]
        result = plan_redistribution(accounts, 1_500_000, 250_000, 50_000)
        assert result.recipients == 9
        assert result.per_account == 50_000
        assert result.total_distributed == 450_000
        assert result.undistributed == 1_050_000

    def test_floor_division_remainder_is_reported(self):
        accounts = [_acct(i, 1_000) for i in range(3)]
        result = plan_redistribution(accounts, 100, 250_000, 50_000)
        assert result.per_account == 33
        assert result.total_distributed == 99
        assert result.undistributed == 1

    def test_no_recipients_keeps_everything_undistributed(self):
        result = plan_redistribution([_acct(1, 9_000_000)], 5_000, 250_000, 50_000)
        assert result.recipients == 0
        assert result.total_distributed == 0
        assert result.undistributed == 5_000

    @pytest.mark.parametrize("collected", [0, 1, 7, 123_456, 10_000_000])
    def test_distributed_never_exceeds_collected(self, collected):
        accounts = [_acct(i, i * 10_000) for i in range(30)]
        result = plan_redistribution(accounts, collected, 250_000, 50_000)
        assert result.total_distributed <= collected
        assert result.total_distributed == result.recipients * result.per_account
        assert result.per_account <= 50_000
