"""
Equilibria — Economic Health Analyzer & Rebalancer for Discord Casino Economies
===============================================================================
Samples every account balance on a fixed interval, measures how healthy and
how unequal the community economy is, tunes the payout multipliers that the
casino games read, and fires rate-limited stabilizing interventions
(contraction, stimulus, progressive wealth tax) when the economy drifts.

Package layout::

    equilibria/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Base multiplier table + presentation constants
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Balances, game results, snapshot history
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader, shared analyzer
    │   └── cogs/
    │       └── tasks.py   # Periodic analysis → intervention → multiplier loop
    ├── engine/
    │   ├── analysis.py    # AnalysisSnapshot + recommendations
    │   ├── distribution.py # Wealth statistics, buckets, Gini index
    │   ├── game_stats.py  # Win rate / house edge per game
    │   ├── health.py      # Weighted health score → HealthLevel
    │   ├── multipliers.py # Base/active tables + temporary overrides
    │   ├── interventions.py # Cooldown gating + balance-change planning
    │   └── cache.py       # TTL cache of the last analysis per scope
    └── services/
        ├── economy_service.py      # EconomyAnalyzer context object
        ├── intervention_service.py # Applies interventions to accounts
        ├── announcement_service.py # Best-effort intervention announcements
        ├── embeds.py               # Discord embed builders
        ├── account_service.py      # Balance repository
        ├── game_stats_service.py   # Game result aggregates
        └── history_service.py      # Stored snapshots + inflation
"""

__version__ = "0.1.0"
