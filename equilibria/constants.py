"""
equilibria.constants — Shared Constants
========================================

Single source of truth for the designed-default payout table and the
presentation constants used by embeds and logs.  Import from here instead
of duplicating in the engine, services, and cogs.
"""

from __future__ import annotations

from equilibria.database.models import InterventionKind

# ---------------------------------------------------------------------------
# Designed-default payout multipliers: game → variant → scalar | sequence
# Sequences are positional (slot reel outcomes, plinko slots, duck rounds…)
# ---------------------------------------------------------------------------
BASE_MULTIPLIERS: dict[str, dict[str, float | tuple[float, ...]]] = {
    "slots": {
        "classic": (0, 0, 0.5, 1.5, 2.0, 5.0, 10.0, 25.0, 50.0),
        "premium": (0, 0, 1.0, 2.0, 3.0, 7.5, 15.0, 35.0, 75.0),
    },
    "blackjack": {
        "win": 2.0,
        "blackjack": 2.5,
        "insurance": 3.0,
    },
    "plinko": {
        "easy": (0.0, 0.2, 0.5, 1.2, 1.5, 2.0, 1.5, 1.2, 0.5, 0.2, 0.0),
        "medium": (0.0, 0.1, 0.5, 1.0, 2.5, 1.0, 0.5, 0.1, 0.0),
        "nightmare": (
            0.0, 0.0, 0.0, 0.1, 6.0, 0.2, 0.3, 0.5, 0.1, 0.1,
            0.1, 0.5, 0.3, 0.2, 6.0, 0.1, 0.0, 0.0, 0.0,
        ),
    },
    "duck": {
        "easy": (1.10, 1.15, 1.25, 1.90, 2.20, 2.25, 2.40),
        "medium": (1.05, 1.25, 1.70, 2.00, 2.40),
        "hard": (1.50, 2.25, 3.00),
    },
    "battleship": {
        "hit": 1.5,
        "sink": 3.0,
        "perfect_game": 10.0,
    },
    "fishing": {
        "common": (1.2, 1.5, 2.0),
        "rare": (3.0, 5.0, 8.0),
        "legendary": (15.0, 25.0, 50.0),
    },
    "rps": {
        "win": 2.0,
        "tie": 1.0,
    },
    "bingo": {
        "line": 2.0,
        "full_house": 10.0,
        "blackout": 25.0,
    },
    "uno": {
        "win": 2.0,
        "uno": 3.0,
        "wild_card": 1.5,
    },
}

# ---------------------------------------------------------------------------
# Wealth buckets, lowest first (thresholds live in AnalysisConfig)
# ---------------------------------------------------------------------------
BUCKET_NAMES: tuple[str, ...] = ("poor", "middle", "rich", "wealthy", "elite")

# ---------------------------------------------------------------------------
# Presentation (used by embeds)
# ---------------------------------------------------------------------------
INTERVENTION_COLORS: dict[InterventionKind, int] = {
    InterventionKind.CONTRACTION: 0xFF4444,  # red
    InterventionKind.STIMULUS: 0x44FF44,     # green
    InterventionKind.WEALTH_TAX: 0xFFD700,   # gold
}


def format_coins(amount: float) -> str:
    """Render a coin amount with thousands separators (``$1,234,567``)."""
    return f"${int(amount):,}"
