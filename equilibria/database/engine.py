"""
equilibria.database.engine — Engine, Sessions & the Thread Bridge
==================================================================

The balance scan behind every analysis and the per-account updates of an
intervention are plain synchronous SQLAlchemy.  The bot's event loop must
keep serving games while they run, so async callers go through
:func:`run_db`, which ships the call to a worker thread.

Usage::

    from equilibria.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()                 # DATABASE_URL from .env
    init_db(engine)                             # economy_snapshots only
    accounts = await run_db(repo.list_accounts, guild_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from equilibria.database.models import Base, EconomySnapshot

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Tables this project owns; the balance and round tables belong to the games
OWNED_TABLES = (EconomySnapshot.__table__,)


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build an :class:`Engine` for *url*, or ``DATABASE_URL`` when omitted.

    A cycle is one scan plus a burst of single-row updates, so the pool
    stays small.  Set ``EQUILIBRIA_SQL_ECHO=1`` to log every statement.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the casino database."
        )

    engine = create_engine(
        url,
        echo=os.getenv("EQUILIBRIA_SQL_ECHO") == "1",
        pool_size=3,
        max_overflow=2,
        pool_pre_ping=True,   # The loop idles for minutes between cycles
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
def init_db(engine: Engine, *, include_game_tables: bool = False) -> None:
    """Create the analysis history table if it is missing.

    ``user_balances`` and ``game_results`` are written by the gameplay side
    of the bot and normally exist already; pass ``include_game_tables=True``
    to create them too on a fresh development database.
    """
    if include_game_tables:
        Base.metadata.create_all(engine)
    else:
        Base.metadata.create_all(engine, tables=list(OWNED_TABLES))
    logger.info(
        "Database tables verified (%s)",
        "all" if include_game_tables else ", ".join(t.name for t in OWNED_TABLES),
    )


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """One transaction: commit when the block exits cleanly, roll back if not.

    Balance writes use one of these per account so a failure stays local
    to that account.
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Thread bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous repository call without blocking the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
