"""
equilibria.bot.core — Bot Instance & Cog Loader
================================================

Defines :class:`EconomyBot`, a ``commands.Bot`` subclass that carries the
shared state every cog reads through ``self.bot``:

- ``bot.cfg``     — the parsed :class:`EconomyConfig` from ``config.yaml``.
- ``bot.engine``  — the SQLAlchemy :class:`Engine`.
- ``bot.economy`` — the :class:`EconomyAnalyzer` context object.  Game cogs
  read payouts through ``bot.economy.get_multipliers(game, variant)``.

On start-up the bot wires intervention announcements to the configured
channel; on close it cancels any pending multiplier-override expiry.
"""

from __future__ import annotations

import logging

import discord
from discord.ext import commands
from sqlalchemy import Engine

from equilibria.config import EconomyConfig
from equilibria.services.announcement_service import InterventionAnnouncer
from equilibria.services.economy_service import EconomyAnalyzer

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "equilibria.bot.cogs.tasks",
]


class EconomyBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`EconomyConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to the economy database.
    economy:
        The analyzer built once at start-up and shared with every cog.
    """

    def __init__(self, cfg: EconomyConfig, engine: Engine, economy: EconomyAnalyzer) -> None:
        intents = discord.Intents.default()
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description="Equilibria — casino economy rebalancer",
        )

        self.cfg = cfg
        self.engine = engine
        self.economy = economy
        economy.attach_announcer(
            InterventionAnnouncer(self, cfg.announce_channel_id, cfg.interventions)
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions; one broken cog does not stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        if self.cfg.announce_channel_id and not self.get_channel(self.cfg.announce_channel_id):
            logger.warning(
                "Announcement channel %d not visible to the bot — "
                "interventions will not be announced",
                self.cfg.announce_channel_id,
            )

    async def close(self) -> None:
        """Graceful shutdown — cancel override timers, then disconnect."""
        logger.info("Bot shutting down…")
        self.economy.shutdown()
        await super().close()
