"""
equilibria.engine.multipliers — Base/Active Payout Tables & Overrides
======================================================================

Two immutable tables exist at all times:

- ``base``   — the designed-default payouts from :mod:`equilibria.constants`.
- ``active`` — what games actually read; ``base`` scaled by the current
  health factor, or a temporary override on top of that.

Tables are nested ``MappingProxyType`` objects holding floats and tuples,
so an update is a single pointer swap and a reader can never observe a
half-written table.

Temporary overrides live in a single slot.  Installing a new override
cancels the pending expiry of the previous one and scales the
*pre-override* table again (overrides never stack).  Expiry restores that
exact pre-override table, either from the scheduled timer or lazily on the
next read past ``expires_at``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol, TypeAlias

from equilibria.config import MultiplierConfig
from equilibria.constants import BASE_MULTIPLIERS
from equilibria.database.models import HealthLevel
from equilibria.engine.analysis import AnalysisSnapshot
from equilibria.engine.game_stats import GameRatio

logger = logging.getLogger(__name__)

MultiplierValue: TypeAlias = float | tuple[float, ...]
MultiplierTable: TypeAlias = Mapping[str, Mapping[str, MultiplierValue]]

_EMPTY_GAME: Mapping[str, MultiplierValue] = MappingProxyType({})


# ---------------------------------------------------------------------------
# Table helpers
# ---------------------------------------------------------------------------
def freeze_table(raw: Mapping[str, Mapping[str, object]]) -> MultiplierTable:
    """Deep-freeze a nested ``game → variant → value`` mapping."""
    frozen: dict[str, Mapping[str, MultiplierValue]] = {}
    for game, variants in raw.items():
        inner: dict[str, MultiplierValue] = {}
        for variant, value in variants.items():
            if isinstance(value, (list, tuple)):
                inner[variant] = tuple(float(v) for v in value)
            else:
                inner[variant] = float(value)
        frozen[game] = MappingProxyType(inner)
    return MappingProxyType(frozen)


def scale_value(value: MultiplierValue, factor: float) -> MultiplierValue:
    """Multiply a scalar or each element of a sequence, rounded to 2 decimals."""
    if isinstance(value, tuple):
        return tuple(round(v * factor, 2) for v in value)
    return round(value * factor, 2)


def scale_table(
    table: MultiplierTable,
    factor: float,
    per_game: Mapping[str, float] | None = None,
) -> MultiplierTable:
    """Return a new frozen table with every entry scaled by *factor*.

    *per_game* optionally multiplies an extra factor into individual games.
    """
    per_game = per_game or {}
    scaled: dict[str, Mapping[str, MultiplierValue]] = {}
    for game, variants in table.items():
        game_factor = factor * per_game.get(game, 1.0)
        scaled[game] = MappingProxyType({
            variant: scale_value(value, game_factor)
            for variant, value in variants.items()
        })
    return MappingProxyType(scaled)


# ---------------------------------------------------------------------------
# Factor rules
# ---------------------------------------------------------------------------
def adjustment_factor(
    health: HealthLevel,
    gini: float,
    cfg: MultiplierConfig | None = None,
) -> float:
    """Uniform payout factor for *health*, with an inequality penalty.

    CRITICAL uses the POOR factor; UNKNOWN is neutral.
    """
    cfg = cfg or MultiplierConfig()
    factor = {
        HealthLevel.EXCELLENT: cfg.excellent_factor,
        HealthLevel.GOOD: cfg.good_factor,
        HealthLevel.FAIR: cfg.fair_factor,
        HealthLevel.POOR: cfg.poor_factor,
        HealthLevel.CRITICAL: cfg.poor_factor,
    }.get(health, 1.0)
    if gini > cfg.inequality_threshold:
        factor *= cfg.inequality_penalty
    return factor


def edge_correction(ratio: GameRatio | None, min_games: int = 10) -> float:
    """Per-game factor pulling an observed house edge back toward 8–18 %."""
    if ratio is None or ratio.total_games <= min_games:
        return 1.0
    edge = ratio.house_edge
    if edge < 5:
        return 0.6
    if edge < 8:
        return 0.75
    if edge > 25:
        return 1.3
    if edge > 18:
        return 1.15
    return 1.0


# ---------------------------------------------------------------------------
# Expiry scheduling
# ---------------------------------------------------------------------------
class Cancellable(Protocol):
    def cancel(self) -> None: ...


Schedule: TypeAlias = Callable[[float, Callable[[], None]], Cancellable]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default one-shot scheduler: a daemon :class:`threading.Timer`."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.name = "multiplier-override-expiry"
    timer.start()
    return timer


@dataclass(frozen=True, slots=True)
class TemporaryOverride:
    """An outstanding boost/reduction and the table to restore at expiry."""

    factor: float
    expires_at: float
    prior_active: MultiplierTable
    reason: str = ""


# ---------------------------------------------------------------------------
# MultiplierEngine
# ---------------------------------------------------------------------------
class MultiplierEngine:
    """Owns the base and active payout tables.

    Usage:
        multipliers = MultiplierEngine(config=cfg.multipliers)
        multipliers.update_from_analysis(snapshot)
        reels = multipliers.get_multipliers("slots", "classic")
        multipliers.apply_override(0.8, 3600, reason="contraction")
    """

    def __init__(
        self,
        base: Mapping[str, Mapping[str, object]] = BASE_MULTIPLIERS,
        *,
        config: MultiplierConfig | None = None,
        min_games_for_edge: int = 10,
        clock: Callable[[], float] = time.time,
        schedule: Schedule = thread_timer,
    ) -> None:
        self._cfg = config or MultiplierConfig()
        self._min_games = min_games_for_edge
        self._clock = clock
        self._schedule = schedule
        self._lock = threading.RLock()

        self._base: MultiplierTable = freeze_table(base)
        self._active: MultiplierTable = self._base
        self._override: TemporaryOverride | None = None
        self._timer: Cancellable | None = None
        self._last_factor: float = 1.0

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @property
    def base(self) -> MultiplierTable:
        return self._base

    @property
    def active(self) -> MultiplierTable:
        self._expire_if_due()
        return self._active

    @property
    def override(self) -> TemporaryOverride | None:
        self._expire_if_due()
        return self._override

    @property
    def last_factor(self) -> float:
        """Health-driven factor behind the current non-override table."""
        return self._last_factor

    def get_multipliers(
        self, game: str, variant: str | None = None
    ) -> MultiplierValue | Mapping[str, MultiplierValue]:
        """Current payout multipliers for *game* (and *variant*).

        Unknown keys fall back to the base table, then to an empty mapping
        (no variant) or an empty tuple (with variant).  Never raises.
        """
        try:
            self._expire_if_due()
            active = self._active
            if variant is None:
                table = active.get(game)
                if table is None:
                    table = self._base.get(game)
                return table if table is not None else _EMPTY_GAME

            value = active.get(game, _EMPTY_GAME).get(variant)
            if value is None:
                value = self._base.get(game, _EMPTY_GAME).get(variant)
            return value if value is not None else ()
        except TypeError:
            logger.warning("Invalid multiplier key: game=%r variant=%r", game, variant)
            return () if variant is not None else _EMPTY_GAME

    # -------------------------------------------------------------------
    # Health-driven recomputation
    # -------------------------------------------------------------------
    def update_from_analysis(self, snapshot: AnalysisSnapshot) -> float | None:
        """Rebuild ``active`` from ``base`` for the snapshot's health.

        Returns the uniform factor applied, or None when nothing changed
        (UNKNOWN health, or an override currently holds the table).
        """
        if snapshot.health_level is HealthLevel.UNKNOWN:
            logger.debug("Health UNKNOWN — keeping current multipliers")
            return None

        factor = adjustment_factor(snapshot.health_level, snapshot.gini_index, self._cfg)
        per_game: dict[str, float] = {}
        if self._cfg.edge_correction:
            for game in self._base:
                correction = edge_correction(
                    snapshot.per_game_ratios.get(game), self._min_games
                )
                if correction != 1.0:
                    per_game[game] = correction
        new_active = scale_table(self._base, factor, per_game)

        self._expire_if_due()
        with self._lock:
            if self._override is not None:
                logger.info(
                    "Override %.2fx active — health factor %.2fx deferred",
                    self._override.factor, factor,
                )
                return None
            self._active = new_active
            self._last_factor = factor

        logger.info(
            "Updated game multipliers: %.2fx factor (health=%s, gini=%.3f%s)",
            factor, snapshot.health_level, snapshot.gini_index,
            f", edge-corrected: {sorted(per_game)}" if per_game else "",
        )
        return factor

    # -------------------------------------------------------------------
    # Temporary overrides
    # -------------------------------------------------------------------
    def apply_override(
        self, factor: float, duration: float, *, reason: str = ""
    ) -> TemporaryOverride:
        """Scale the pre-override table by *factor* for *duration* seconds."""
        if factor <= 0:
            raise ValueError(f"Override factor must be positive, got {factor}")
        if duration <= 0:
            raise ValueError(f"Override duration must be positive, got {duration}")

        self._expire_if_due()
        with self._lock:
            replaced = self._override
            prior = replaced.prior_active if replaced is not None else self._active
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

            override = TemporaryOverride(
                factor=factor,
                expires_at=self._clock() + duration,
                prior_active=prior,
                reason=reason,
            )
            self._override = override
            self._active = scale_table(prior, factor)
            self._timer = self._schedule(duration, lambda: self._expire(override))

        if replaced is not None:
            logger.info(
                "Replaced pending %.2fx override (%s) with %.2fx",
                replaced.factor, replaced.reason or "unspecified", factor,
            )
        logger.info(
            "Applied temporary %.2fx multiplier override for %.0f minutes (%s)",
            factor, duration / 60, reason or "unspecified",
        )
        return override

    def clear_override(self) -> bool:
        """Expire the outstanding override now.  Returns False if none."""
        override = self._override
        if override is None:
            return False
        return self._expire(override)

    def _expire(self, override: TemporaryOverride) -> bool:
        with self._lock:
            if self._override is not override:
                return False
            self._active = override.prior_active
            self._override = None
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        logger.info(
            "Temporary %.2fx override expired — restored pre-override multipliers",
            override.factor,
        )
        return True

    def _expire_if_due(self) -> None:
        override = self._override
        if override is not None and self._clock() >= override.expires_at:
            self._expire(override)

    def shutdown(self) -> None:
        """Cancel any pending expiry timer (process shutdown)."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            logger.info("Pending multiplier override expiry cancelled")
