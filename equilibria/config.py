"""
equilibria.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for the guild identity, the announcement channel, and
every tunable of the analyzer (bucket thresholds, cooldowns, bands).
Secrets (``DISCORD_TOKEN``, ``DATABASE_URL``) stay in ``.env``.

Usage::

    from equilibria.config import load_config

    cfg = load_config()                        # reads ./config.yaml by default
    print(cfg.guild_id)                        # 1468816181854081229
    print(cfg.interventions.daily_event_cap)   # 3
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


# ---------------------------------------------------------------------------
# Tunable sections (every key is optional in the YAML file)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    """Sampling and scoring knobs."""

    interval_minutes: float = 10.0
    cache_ttl_seconds: float = 300.0
    exempt_account_ids: frozenset[int] = frozenset()
    # Ascending upper bounds of the first four buckets; the fifth is open-ended
    bucket_thresholds: tuple[int, int, int, int] = (50_000, 500_000, 2_000_000, 10_000_000)
    min_games_for_edge: int = 10
    inflation_window_hours: float = 24.0
    health_hysteresis: float = 0.0


@dataclass(frozen=True, slots=True)
class MultiplierConfig:
    """Health → payout factor mapping."""

    poor_factor: float = 1.30
    fair_factor: float = 1.00
    good_factor: float = 0.85
    excellent_factor: float = 0.70
    inequality_threshold: float = 0.8
    inequality_penalty: float = 0.90
    edge_correction: bool = False


@dataclass(frozen=True, slots=True)
class InterventionConfig:
    """Eligibility thresholds, cooldowns, and magnitudes of interventions."""

    daily_event_cap: int = 3
    cap_window_hours: float = 24.0

    # Contraction ("market crash")
    contraction_cooldown_hours: float = 2.0
    contraction_gini_threshold: float = 0.7
    contraction_floor: int = 6_500_000
    contraction_rate_band: tuple[float, float] = (0.05, 0.13)
    contraction_multiplier: float = 0.80
    contraction_duration_minutes: float = 60.0

    # Stimulus
    stimulus_cooldown_hours: float = 4.0
    stimulus_health_levels: tuple[str, ...] = ("POOR",)
    stimulus_ceiling: int = 100_000
    stimulus_amount_band: tuple[int, int] = (25_000, 75_000)
    stimulus_multiplier: float = 1.15
    stimulus_duration_minutes: float = 120.0

    # Progressive wealth tax + redistribution
    tax_cooldown_hours: float = 6.0
    tax_latch_hours: float = 24.0
    tax_gini_threshold: float = 0.75
    tax_brackets: tuple[tuple[int, float], ...] = (
        (50_000_000, 0.025),
        (10_000_000, 0.015),
        (5_000_000, 0.01),
    )
    redistribution_ceiling: int = 250_000
    redistribution_cap: int = 50_000


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EconomyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Discord
    guild_id: int  # Primary guild snowflake (the analysis scope)
    bot_prefix: str = "!"
    announce_channel_id: int | None = None  # Where interventions are announced

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    multipliers: MultiplierConfig = field(default_factory=MultiplierConfig)
    interventions: InterventionConfig = field(default_factory=InterventionConfig)


# ---------------------------------------------------------------------------
# Section parsing
# ---------------------------------------------------------------------------
def _coerce(value: Any, default: Any) -> Any:
    """Coerce a YAML value to the shape of the dataclass default."""
    if isinstance(default, frozenset):
        return frozenset(int(v) for v in value or ())
    if isinstance(default, tuple):
        if default and isinstance(default[0], tuple):
            return tuple(tuple(item) for item in value)
        return tuple(value)
    if isinstance(default, bool):
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def _build_section(cls: type, raw: dict | None):
    """Instantiate *cls* from *raw*, keeping defaults for missing keys.

    Unknown keys raise ``KeyError`` so typos in ``config.yaml`` are caught at
    start-up instead of silently ignored.
    """
    raw = raw or {}
    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise KeyError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    kwargs = {
        name: _coerce(value, getattr(defaults, name)) for name, value in raw.items()
    }
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> EconomyConfig:
    """Read *path* and return an :class:`EconomyConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``guild_id`` is missing or a section carries an unknown key.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return EconomyConfig(
        guild_id=int(raw["guild_id"]),
        bot_prefix=raw.get("bot_prefix", "!"),
        announce_channel_id=(
            int(raw["announce_channel_id"]) if raw.get("announce_channel_id") else None
        ),
        analysis=_build_section(AnalysisConfig, raw.get("analysis")),
        multipliers=_build_section(MultiplierConfig, raw.get("multipliers")),
        interventions=_build_section(InterventionConfig, raw.get("interventions")),
    )
