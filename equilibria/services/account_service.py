"""
equilibria.services.account_service — Account Balance Repository
=================================================================

Reads every balance in a scope for analysis and applies the balance deltas
planned by an intervention.

Each delta is applied as ``UPDATE … SET wallet = wallet + :delta`` under a
row lock, clamped so no balance drops below zero.  A game settling a bet on
the same row between the read and the write is therefore never overwritten.
Each account is its own transaction: a failed write is logged and the pass
continues.  :meth:`AccountRepository.apply_changes` reports what actually
landed, so callers never account for money that did not move.

All methods are synchronous.  Call them via ``run_db()`` from async code.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from equilibria.database.engine import get_session
from equilibria.database.models import UserBalance
from equilibria.engine.interventions import Account, BalanceChange

logger = logging.getLogger(__name__)

__all__ = ["Account", "AccountRepository", "WriteReport"]


@dataclass(slots=True)
class WriteReport:
    """Outcome of one :meth:`AccountRepository.apply_changes` pass."""

    applied: list[BalanceChange] = field(default_factory=list)
    failed: int = 0

    @property
    def total(self) -> int:
        """Net coins moved by the applied changes (negative = removed)."""
        return sum(c.delta for c in self.applied)


class AccountRepository:
    """SQLAlchemy-backed access to ``user_balances``.

    ``scope`` is a guild id, or ``None`` for every guild at once.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list_accounts(self, scope: int | None) -> list[Account]:
        stmt = select(
            UserBalance.user_id,
            UserBalance.guild_id,
            UserBalance.wallet,
            UserBalance.bank,
        )
        if scope is not None:
            stmt = stmt.where(UserBalance.guild_id == scope)

        with Session(self.engine) as session:
            rows = session.execute(stmt).all()

        return [
            Account(
                user_id=row.user_id,
                guild_id=row.guild_id,
                wallet=int(row.wallet or 0),
                bank=int(row.bank or 0),
            )
            for row in rows
        ]

    def set_balance(
        self, user_id: int, scope: int | None, wallet: int, bank: int
    ) -> bool:
        """Replace the wallet and bank of *user_id*.  False if no row matched."""
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id)
            .values(wallet=max(wallet, 0), bank=max(bank, 0))
        )
        if scope is not None:
            stmt = stmt.where(UserBalance.guild_id == scope)

        with get_session(self.engine) as session:
            matched = session.execute(
                stmt, execution_options={"synchronize_session": False}
            ).rowcount
        return matched > 0

    def adjust_balance(
        self,
        user_id: int,
        guild_id: int,
        wallet_delta: int = 0,
        bank_delta: int = 0,
    ) -> tuple[int, int] | None:
        """Add signed deltas to one account, flooring each balance at zero.

        Returns the ``(wallet, bank)`` deltas actually applied, which are
        smaller than requested when a debit hits the floor, or None if no
        row matched.
        """
        where = (UserBalance.user_id == user_id, UserBalance.guild_id == guild_id)
        with get_session(self.engine) as session:
            row = session.execute(
                select(UserBalance.wallet, UserBalance.bank).where(*where).with_for_update()
            ).first()
            if row is None:
                return None
            applied_wallet = max(wallet_delta, -int(row.wallet or 0))
            applied_bank = max(bank_delta, -int(row.bank or 0))
            session.execute(
                update(UserBalance)
                .where(*where)
                .values(
                    wallet=UserBalance.wallet + applied_wallet,
                    bank=UserBalance.bank + applied_bank,
                ),
                execution_options={"synchronize_session": False},
            )
        return applied_wallet, applied_bank

    def apply_changes(self, changes: Iterable[BalanceChange]) -> WriteReport:
        """Apply every change, one transaction each.

        The report holds the changes as they actually landed; failed and
        vanished rows are only counted.
        """
        report = WriteReport()
        for change in changes:
            account = change.account
            try:
                applied = self.adjust_balance(
                    account.user_id,
                    account.guild_id,
                    change.wallet_delta,
                    change.bank_delta,
                )
            except SQLAlchemyError:
                logger.exception(
                    "Balance write failed for user %d in guild %d (delta %+d)",
                    account.user_id, account.guild_id, change.delta,
                )
                report.failed += 1
                continue
            if applied is None:
                logger.warning(
                    "Balance row vanished for user %d in guild %d, skipped",
                    account.user_id, account.guild_id,
                )
                report.failed += 1
                continue
            landed = BalanceChange(account, wallet_delta=applied[0], bank_delta=applied[1])
            if landed.delta != 0:
                report.applied.append(landed)
        return report
