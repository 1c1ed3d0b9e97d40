"""
equilibria.bot.__main__ — Entry point for ``python -m equilibria.bot``
======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (tunables).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the EconomyAnalyzer context object.
5. Create the EconomyBot and hand it config + engine + analyzer.
6. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m equilibria.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from equilibria.bot.core import EconomyBot
from equilibria.config import load_config
from equilibria.database.engine import create_db_engine, init_db
from equilibria.services.economy_service import EconomyAnalyzer

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("equilibria")


def main() -> None:
    """Bootstrap and run the Equilibria bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Tunables.
    cfg = load_config(os.getenv("EQUILIBRIA_CONFIG", "config.yaml"))
    logger.info(
        "Config loaded — guild %d, analysis every %.0f min",
        cfg.guild_id, cfg.analysis.interval_minutes,
    )

    # 3. Database.
    engine = create_db_engine()
    init_db(
        engine,
        include_game_tables=os.getenv("EQUILIBRIA_CREATE_GAME_TABLES") == "1",
    )

    # 4. Analyzer (one instance, injected everywhere).
    economy = EconomyAnalyzer.from_config(cfg, engine)

    # 5. Bot.
    bot = EconomyBot(cfg=cfg, engine=engine, economy=economy)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Equilibria bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")
    finally:
        economy.shutdown()


if __name__ == "__main__":
    main()
