"""
equilibria.services.embeds — Discord embed builders for interventions
======================================================================

All embed construction lives here so the announcement service only needs
to supply an :class:`InterventionOutcome`, no layout concerns.
"""

from __future__ import annotations

from datetime import UTC, datetime

import discord

from equilibria.config import InterventionConfig
from equilibria.constants import INTERVENTION_COLORS, format_coins
from equilibria.database.models import InterventionKind
from equilibria.engine.interventions import InterventionOutcome

FOOTER_TEXT = "Equilibria • Casino Economy"


def _percent_change(factor: float | None) -> str:
    if factor is None:
        return "unchanged"
    return f"{(factor - 1) * 100:+.0f}%"


def _base_embed(outcome: InterventionOutcome, title: str, description: str) -> discord.Embed:
    embed = discord.Embed(
        title=title,
        description=description,
        color=discord.Color(INTERVENTION_COLORS[outcome.kind]),
        timestamp=datetime.fromtimestamp(outcome.triggered_at, tz=UTC),
    )
    embed.set_footer(text=FOOTER_TEXT)
    return embed


def build_contraction_embed(
    outcome: InterventionOutcome, cfg: InterventionConfig
) -> discord.Embed:
    """Market crash: who lost what, and the temporary payout reduction."""
    embed = _base_embed(
        outcome,
        "\U0001f4c9 MARKET CRASH",
        "\U0001f534 **The casino economy has overheated and triggered a market crash!**",
    )
    rate = (outcome.rate or 0.0) * 100
    embed.add_field(
        name="\U0001f4a5 Impact",
        value=f"{rate:.1f}% wealth reduction for balances of {format_coins(cfg.contraction_floor)}+",
        inline=True,
    )
    embed.add_field(
        name="\U0001f465 Affected Players", value=str(outcome.affected_accounts), inline=True
    )
    embed.add_field(
        name="\U0001f4b8 Total Removed", value=format_coins(outcome.total_amount), inline=True
    )
    if outcome.top_accounts:
        lines = [
            f"{i}. <@{c.account.user_id}>: {format_coins(c.account.total)} "
            f"(-{format_coins(-c.delta)})"
            for i, c in enumerate(outcome.top_accounts, start=1)
        ]
        embed.add_field(name="\U0001f3af Top Contributors", value="\n".join(lines), inline=False)
    embed.add_field(
        name="\U0001f3b0 Game Payouts",
        value=(
            f"{_percent_change(outcome.multiplier_factor)} for "
            f"{outcome.multiplier_minutes:.0f} minutes"
        ),
        inline=False,
    )
    return embed


def build_stimulus_embed(
    outcome: InterventionOutcome, cfg: InterventionConfig
) -> discord.Embed:
    """Stimulus package: flat amount per eligible player plus a payout boost."""
    embed = _base_embed(
        outcome,
        "\U0001f4c8 ECONOMIC STIMULUS",
        "\U0001f7e2 **The struggling economy has triggered a stimulus package!**",
    )
    embed.add_field(
        name="\U0001f4b0 Stimulus Amount",
        value=f"{format_coins(outcome.per_account_amount)} per eligible player",
        inline=True,
    )
    embed.add_field(
        name="\U0001f465 Recipients",
        value=f"{outcome.affected_accounts} players under {format_coins(cfg.stimulus_ceiling)}",
        inline=True,
    )
    embed.add_field(
        name="\U0001f4ca Total Distributed",
        value=format_coins(outcome.total_amount),
        inline=True,
    )
    embed.add_field(
        name="\U0001f3b0 Game Payouts",
        value=(
            f"{_percent_change(outcome.multiplier_factor)} for "
            f"{outcome.multiplier_minutes:.0f} minutes"
        ),
        inline=False,
    )
    return embed


def build_wealth_tax_embed(
    outcome: InterventionOutcome, cfg: InterventionConfig
) -> discord.Embed:
    """Progressive wealth tax and where the proceeds went."""
    embed = _base_embed(
        outcome,
        "\U0001f4b0 PROGRESSIVE WEALTH TAX",
        "\u2696\ufe0f **High wealth inequality has triggered progressive taxation!**",
    )
    embed.add_field(
        name="\U0001f4ca Inequality Level",
        value=f"Gini index: {outcome.gini_index:.3f}",
        inline=False,
    )
    brackets = "\n".join(
        f">{format_coins(threshold)}: {rate * 100:.1f}%"
        for threshold, rate in sorted(cfg.tax_brackets, reverse=True)
    )
    embed.add_field(name="\U0001f3db\ufe0f Tax Brackets", value=brackets, inline=True)
    embed.add_field(
        name="\U0001f451 Taxed Players", value=str(outcome.affected_accounts), inline=True
    )
    embed.add_field(
        name="\U0001f4b8 Total Collected", value=format_coins(outcome.total_amount), inline=True
    )
    embed.add_field(
        name="\U0001f3af Redistribution",
        value=(
            f"{outcome.recipients} players under "
            f"{format_coins(cfg.redistribution_ceiling)} received "
            f"{format_coins(outcome.per_account_amount)} each"
        ),
        inline=False,
    )
    return embed


_BUILDERS = {
    InterventionKind.CONTRACTION: build_contraction_embed,
    InterventionKind.STIMULUS: build_stimulus_embed,
    InterventionKind.WEALTH_TAX: build_wealth_tax_embed,
}


def build_intervention_embed(
    outcome: InterventionOutcome, cfg: InterventionConfig
) -> discord.Embed:
    return _BUILDERS[outcome.kind](outcome, cfg)
