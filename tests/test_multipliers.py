"""
tests/test_multipliers.py — Base/Active Tables & Temporary Overrides
=====================================================================
"""

from __future__ import annotations

import threading
import time

import pytest
from conftest import FakeClock, FakeScheduler, make_snapshot

from equilibria.config import MultiplierConfig
from equilibria.database.models import HealthLevel
from equilibria.engine.game_stats import GameRatio
from equilibria.engine.multipliers import (
    MultiplierEngine,
    adjustment_factor,
    edge_correction,
    freeze_table,
    scale_table,
    thread_timer,
)

BASE = {
    "blackjack": {"win": 2.0, "blackjack": 2.5},
    "slots": {"classic": [0, 0.5, 1.5, 10.0]},
}


def _engine(clock=None, scheduler=None, **kwargs) -> MultiplierEngine:
    return MultiplierEngine(
        BASE,
        clock=clock or FakeClock(),
        schedule=scheduler or FakeScheduler(),
        **kwargs,
    )


def _ratio(game: str, edge: float, games: int = 100) -> GameRatio:
    return GameRatio(game, games, 45.0, edge, 100.0, edge, edge * games)


# ---------------------------------------------------------------------------
# Table helpers
# ---------------------------------------------------------------------------
class TestTables:
    def test_freeze_converts_sequences_to_tuples(self):
        table = freeze_table(BASE)
        assert table["slots"]["classic"] == (0.0, 0.5, 1.5, 10.0)

    def test_frozen_table_is_read_only(self):
        table = freeze_table(BASE)
        with pytest.raises(TypeError):
            table["blackjack"]["win"] = 9.0  # type: ignore[index]

    def test_scale_rounds_each_value(self):
        scaled = scale_table(freeze_table(BASE), 1.3)
        assert scaled["blackjack"]["win"] == pytest.approx(2.6)
        assert scaled["slots"]["classic"] == pytest.approx((0.0, 0.65, 1.95, 13.0))

    def test_per_game_factor(self):
        scaled = scale_table(freeze_table(BASE), 1.0, {"slots": 0.5})
        assert scaled["blackjack"]["win"] == 2.0
        assert scaled["slots"]["classic"] == pytest.approx((0.0, 0.25, 0.75, 5.0))


# ---------------------------------------------------------------------------
# Factor rules
# ---------------------------------------------------------------------------
class TestAdjustmentFactor:
    @pytest.mark.parametrize(
        "level, factor",
        [
            (HealthLevel.POOR, 1.30),
            (HealthLevel.CRITICAL, 1.30),
            (HealthLevel.FAIR, 1.00),
            (HealthLevel.GOOD, 0.85),
            (HealthLevel.EXCELLENT, 0.70),
            (HealthLevel.UNKNOWN, 1.00),
        ],
    )
    def test_health_levels(self, level, factor):
        assert adjustment_factor(level, 0.2) == pytest.approx(factor)

    def test_inequality_penalty(self):
        assert adjustment_factor(HealthLevel.EXCELLENT, 0.85) == pytest.approx(0.63)

    def test_penalty_threshold_is_strict(self):
        assert adjustment_factor(HealthLevel.FAIR, 0.8) == pytest.approx(1.0)


class TestEdgeCorrection:
    @pytest.mark.parametrize(
        "edge, factor", [(2, 0.6), (6, 0.75), (12, 1.0), (20, 1.15), (30, 1.3)]
    )
    def test_bands(self, edge, factor):
        assert edge_correction(_ratio("slots", edge)) == factor

    def test_needs_more_than_min_games(self):
        assert edge_correction(_ratio("slots", 2, games=10), min_games=10) == 1.0
        assert edge_correction(None) == 1.0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
class TestGetMultipliers:
    def test_starts_at_base(self):
        engine = _engine()
        assert engine.get_multipliers("blackjack", "win") == 2.0
        assert engine.active is engine.base

    def test_whole_game(self):
        assert dict(_engine().get_multipliers("blackjack")) == {"win": 2.0, "blackjack": 2.5}

    def test_unknown_game_is_empty_mapping(self):
        assert dict(_engine().get_multipliers("poker")) == {}

    def test_unknown_variant_is_empty_tuple(self):
        assert _engine().get_multipliers("blackjack", "split") == ()
        assert _engine().get_multipliers("poker", "royal") == ()

    def test_unhashable_key_never_raises(self):
        assert _engine().get_multipliers(["slots"], "classic") == ()  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Health-driven recomputation
# ---------------------------------------------------------------------------
class TestUpdateFromAnalysis:
    def test_poor_health_boosts_payouts(self):
        engine = _engine()
        factor = engine.update_from_analysis(make_snapshot(health=HealthLevel.POOR, gini=0.1))
        assert factor == pytest.approx(1.3)
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.6)
        assert engine.base["blackjack"]["win"] == 2.0

    def test_always_derived_from_base(self):
        engine = _engine()
        engine.update_from_analysis(make_snapshot(health=HealthLevel.POOR, gini=0.1))
        engine.update_from_analysis(make_snapshot(health=HealthLevel.POOR, gini=0.1))
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.6)

    def test_excellent_with_inequality(self):
        engine = _engine()
        engine.update_from_analysis(make_snapshot(health=HealthLevel.EXCELLENT, gini=0.9))
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(1.26)

    def test_unknown_health_leaves_table(self):
        engine = _engine()
        engine.update_from_analysis(make_snapshot(health=HealthLevel.GOOD, gini=0.1))
        before = engine.active
        assert engine.update_from_analysis(make_snapshot(health=HealthLevel.UNKNOWN)) is None
        assert engine.active is before

    def test_edge_correction_is_opt_in(self):
        snapshot = make_snapshot(
            health=HealthLevel.FAIR, gini=0.1, ratios={"slots": _ratio("slots", 2)}
        )
        plain = _engine()
        plain.update_from_analysis(snapshot)
        assert plain.get_multipliers("slots", "classic")[-1] == 10.0

        corrected = _engine(config=MultiplierConfig(edge_correction=True))
        corrected.update_from_analysis(snapshot)
        assert corrected.get_multipliers("slots", "classic")[-1] == pytest.approx(6.0)
        assert corrected.get_multipliers("blackjack", "win") == 2.0


# ---------------------------------------------------------------------------
# Temporary overrides
# ---------------------------------------------------------------------------
class TestOverrides:
    def _poor_engine(self, clock, scheduler):
        engine = _engine(clock, scheduler)
        engine.update_from_analysis(make_snapshot(health=HealthLevel.POOR, gini=0.1))
        return engine

    def test_override_scales_current_active(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        engine.apply_override(0.8, 3600, reason="contraction")
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.08)
        assert scheduler.timers[0].delay == 3600

    def test_timer_expiry_restores_pre_override_table(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        before = engine.active
        engine.apply_override(0.8, 3600)
        scheduler.timers[0].fire()
        assert engine.active is before
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.6)
        assert engine.override is None

    def test_lazy_expiry_on_read(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        engine.apply_override(0.8, 3600)
        clock.advance(3599)
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.08)
        clock.advance(1)
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.6)
        assert scheduler.timers[0].cancelled

    def test_new_override_replaces_without_stacking(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        before = engine.active
        engine.apply_override(0.8, 3600)
        engine.apply_override(1.15, 7200)
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.99)
        assert scheduler.timers[0].cancelled
        assert len(scheduler.pending) == 1

        # The stale first timer can no longer restore anything
        scheduler.timers[0].callback()
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.99)

        scheduler.timers[1].fire()
        assert engine.active is before

    def test_recompute_deferred_while_override_active(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        engine.apply_override(0.8, 3600)
        assert engine.update_from_analysis(
            make_snapshot(health=HealthLevel.GOOD, gini=0.1)
        ) is None
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.08)

        clock.advance(3600)
        assert engine.update_from_analysis(
            make_snapshot(health=HealthLevel.GOOD, gini=0.1)
        ) == pytest.approx(0.85)
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(1.7)

    def test_clear_override(self, clock, scheduler):
        engine = self._poor_engine(clock, scheduler)
        engine.apply_override(0.8, 3600)
        assert engine.clear_override() is True
        assert engine.get_multipliers("blackjack", "win") == pytest.approx(2.6)
        assert engine.clear_override() is False

    def test_rejects_bad_arguments(self):
        engine = _engine()
        with pytest.raises(ValueError):
            engine.apply_override(0, 60)
        with pytest.raises(ValueError):
            engine.apply_override(1.1, 0)

    def test_shutdown_cancels_pending_timer(self, clock, scheduler):
        engine = _engine(clock, scheduler)
        engine.apply_override(0.8, 3600)
        engine.shutdown()
        assert scheduler.timers[0].cancelled

    def test_real_timer_expires(self):
        engine = MultiplierEngine(BASE, schedule=thread_timer)
        engine.apply_override(2.0, 0.05)
        assert engine.get_multipliers("blackjack", "win") == 4.0
        deadline = time.monotonic() + 5
        while engine._override is not None and time.monotonic() < deadline:
            time.sleep(0.01)
        assert engine.get_multipliers("blackjack", "win") == 2.0


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------
class TestConcurrentReads:
    def test_readers_never_see_a_mixed_table(self):
        engine = _engine(FakeClock(), FakeScheduler())
        valid = {
            tuple(scale_table(freeze_table(BASE), f)["slots"]["classic"])
            for f in (1.0, 1.3, 0.85)
        }
        torn: list[tuple] = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                value = engine.get_multipliers("slots", "classic")
                if value not in valid:
                    torn.append(value)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for _ in range(200):
            for level in (HealthLevel.POOR, HealthLevel.GOOD, HealthLevel.FAIR):
                engine.update_from_analysis(make_snapshot(health=level, gini=0.1))
        stop.set()
        for t in threads:
            t.join()

        assert torn == []
