"""
equilibria.bot.cogs.tasks — Periodic Rebalancing Driver
=========================================================

One ``discord.ext.tasks`` loop runs the full economy cycle for the
configured guild every ``analysis.interval_minutes`` (default 10):
analysis → intervention check → multiplier update, in that order and in
the same tick.

A failed cycle is logged and the loop keeps going; the next tick retries.
Unloading the cog cancels the loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

if TYPE_CHECKING:
    from equilibria.bot.core import EconomyBot

logger = logging.getLogger(__name__)


class RebalanceTasks(commands.Cog):
    """Cog owning the rebalancing loop."""

    def __init__(self, bot: EconomyBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start the loop at the configured interval."""
        self.rebalance_loop.change_interval(
            minutes=self.bot.cfg.analysis.interval_minutes
        )
        self.rebalance_loop.start()

    async def cog_unload(self) -> None:
        self.rebalance_loop.cancel()

    # -------------------------------------------------------------------
    # Economy cycle, every analysis interval
    # -------------------------------------------------------------------
    @tasks.loop(minutes=10)
    async def rebalance_loop(self):
        """Analyse the guild economy, intervene if due, retune multipliers."""
        guild_id = self.bot.cfg.guild_id
        try:
            result = await self.bot.economy.run_cycle(guild_id)
        except Exception:
            logger.exception("Economy cycle failed", extra={"task": "rebalance"})
            return

        if result.intervention is not None:
            logger.info(
                "Cycle for guild %d fired %s (%d accounts affected)",
                guild_id, result.intervention.kind,
                result.intervention.affected_accounts,
            )

    @rebalance_loop.before_loop
    async def _wait_rebalance(self):
        await self.bot.wait_until_ready()


async def setup(bot: EconomyBot) -> None:
    await bot.add_cog(RebalanceTasks(bot))
