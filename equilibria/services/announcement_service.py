"""
equilibria.services.announcement_service — Intervention Announcements
======================================================================

Hands a finished :class:`InterventionOutcome` to the announcement channel
as an embed.  Delivery is best-effort: a missing channel or a failed send
is logged and never propagates back into the intervention, whose balance
writes and cooldown bookkeeping are already done.

Embed construction lives in :mod:`equilibria.services.embeds`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.abc import Messageable

from equilibria.config import InterventionConfig
from equilibria.engine.interventions import InterventionOutcome
from equilibria.services.embeds import build_intervention_embed

if TYPE_CHECKING:
    import discord
    from discord.ext import commands

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Channel resolution
# ---------------------------------------------------------------------------
def resolve_announce_channel(
    bot: commands.Bot, channel_id: int | None
) -> Messageable | None:
    if not channel_id:
        return None
    ch = bot.get_channel(channel_id)
    if ch and isinstance(ch, Messageable):
        return ch
    return None


# ---------------------------------------------------------------------------
# Sending helper
# ---------------------------------------------------------------------------
async def _send_embed(channel: Messageable | None, embed: discord.Embed) -> bool:
    if channel is None:
        return False
    try:
        await channel.send(embed=embed)
    except Exception:
        logger.exception(
            "Failed to send announcement embed to channel %s",
            getattr(channel, "id", "?"),
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
class InterventionAnnouncer:
    """Awaitable notification sink for the intervention scheduler.

    Usage:
        announcer = InterventionAnnouncer(bot, cfg.announce_channel_id, cfg.interventions)
        await announcer(outcome)
    """

    def __init__(
        self,
        bot: commands.Bot,
        channel_id: int | None,
        config: InterventionConfig | None = None,
    ) -> None:
        self.bot = bot
        self.channel_id = channel_id
        self.config = config or InterventionConfig()

    async def __call__(self, outcome: InterventionOutcome) -> bool:
        target = resolve_announce_channel(self.bot, self.channel_id)
        if target is None:
            logger.warning(
                "No announcement channel (id=%s) — %s not announced",
                self.channel_id, outcome.kind,
            )
            return False
        try:
            embed = build_intervention_embed(outcome, self.config)
        except Exception:
            logger.exception("Failed to build %s announcement", outcome.kind)
            return False
        return await _send_embed(target, embed)
