"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from equilibria.database.models import Base, HealthLevel
from equilibria.engine.analysis import AnalysisSnapshot
from equilibria.engine.distribution import analyze_distribution


# ---------------------------------------------------------------------------
# SQLite compatibility: BigInteger → INTEGER so autoincrement works.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, start: float = 1_800_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class FakeScheduler:
    """Records one-shot timers instead of starting threads."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]


def make_snapshot(
    balances=(10_000,) * 10,
    *,
    health: HealthLevel = HealthLevel.FAIR,
    gini: float | None = None,
    timestamp: float = 1_800_000_000.0,
    scope: int | None = 1,
    ratios=None,
) -> AnalysisSnapshot:
    """Build a snapshot from *balances*, overriding health and Gini as needed."""
    dist = analyze_distribution(list(balances))
    return AnalysisSnapshot(
        timestamp=timestamp,
        scope=scope,
        total_users=dist.total_users,
        total_wealth=dist.total_wealth,
        average_balance=dist.average_balance,
        median_balance=dist.median_balance,
        gini_index=dist.gini_index if gini is None else gini,
        wealth_buckets=dist.buckets,
        per_game_ratios=ratios or {},
        health_level=health,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Equilibria tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()
