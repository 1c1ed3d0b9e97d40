"""
equilibria.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- user_balances     — Wallet + bank per (member, guild); written by gameplay
                      and, during interventions, by the rebalancer
- game_results      — One row per played round, aggregated per game type
- economy_snapshots — Append-only history of computed analyses
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Equilibria ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class HealthLevel(enum.StrEnum):
    """Overall economic health classification, best first."""
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"


class InterventionKind(enum.StrEnum):
    """The three mutually exclusive stabilizing interventions."""
    CONTRACTION = "CONTRACTION"
    STIMULUS = "STIMULUS"
    WEALTH_TAX = "WEALTH_TAX"


# ---------------------------------------------------------------------------
# UserBalance: one row per member per guild
# ---------------------------------------------------------------------------
class UserBalance(Base):
    __tablename__ = "user_balances"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    wallet: Mapped[int] = mapped_column(BigInteger, default=0)
    bank: Mapped[int] = mapped_column(BigInteger, default=0)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<UserBalance user={self.user_id} guild={self.guild_id} "
            f"wallet={self.wallet} bank={self.bank}>"
        )


# ---------------------------------------------------------------------------
# GameResult: append-only round log written by the game cogs
# ---------------------------------------------------------------------------
class GameResult(Base):
    __tablename__ = "game_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    game_type: Mapped[str] = mapped_column(String(50), nullable=False)
    bet_amount: Mapped[int] = mapped_column(BigInteger, default=0)
    payout: Mapped[int] = mapped_column(BigInteger, default=0)
    won: Mapped[bool] = mapped_column(Boolean, default=False)
    played_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_game_results_guild_type", "guild_id", "game_type"),
    )

    def __repr__(self) -> str:
        return f"<GameResult id={self.id} game={self.game_type!r} won={self.won}>"


# ---------------------------------------------------------------------------
# EconomySnapshot: history of analyses (inflation + operator history)
# ---------------------------------------------------------------------------
class EconomySnapshot(Base):
    __tablename__ = "economy_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int | None] = mapped_column(BigInteger, default=None)  # NULL = global scope
    taken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_users: Mapped[int] = mapped_column(Integer, default=0)
    total_wealth: Mapped[int] = mapped_column(BigInteger, default=0)
    average_balance: Mapped[float] = mapped_column(Float, default=0.0)
    median_balance: Mapped[float] = mapped_column(Float, default=0.0)
    gini_index: Mapped[float] = mapped_column(Float, default=0.0)
    health_level: Mapped[str] = mapped_column(String(20), nullable=False)
    health_score: Mapped[int] = mapped_column(Integer, default=0)
    inflation_rate: Mapped[float] = mapped_column(Float, default=0.0)

    __table_args__ = (
        Index("ix_economy_snapshots_guild_taken", "guild_id", "taken_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EconomySnapshot id={self.id} guild={self.guild_id} "
            f"health={self.health_level}>"
        )
