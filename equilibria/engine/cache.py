"""
equilibria.engine.cache — TTL Cache of the Last Analysis per Scope
===================================================================

A full analysis scans every account, so callers that only want "the
current picture" (game commands, admin views) read the cached snapshot
while it is younger than the TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from equilibria.engine.analysis import AnalysisSnapshot

logger = logging.getLogger(__name__)

GLOBAL_SCOPE_KEY = "global"


def scope_key(scope: int | None) -> str:
    """Cache key for *scope*; ``None`` is the global scope."""
    return GLOBAL_SCOPE_KEY if scope is None else str(scope)


class AnalysisCache:
    """Thread-safe snapshot cache keyed by scope.

    Freshness is measured against the snapshot's own ``timestamp``, so a
    snapshot is considered stale exactly ``ttl`` seconds after it was taken.

    Usage:
        cache = AnalysisCache(ttl=300)
        cache.put(snapshot)
        fresh = cache.get(guild_id)   # None when missing or stale
    """

    def __init__(
        self, ttl: float = 300.0, *, clock: Callable[[], float] = time.time
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, AnalysisSnapshot] = {}

    def get(self, scope: int | None) -> AnalysisSnapshot | None:
        """Return the cached snapshot for *scope* if still fresh."""
        key = scope_key(scope)
        with self._lock:
            snapshot = self._entries.get(key)
            if snapshot is None:
                return None
            if self._clock() - snapshot.timestamp >= self.ttl:
                logger.debug("Analysis cache stale for scope %s", key)
                return None
            return snapshot

    def peek(self, scope: int | None) -> AnalysisSnapshot | None:
        """Return the last stored snapshot for *scope*, fresh or not."""
        with self._lock:
            return self._entries.get(scope_key(scope))

    def put(self, snapshot: AnalysisSnapshot) -> None:
        with self._lock:
            self._entries[scope_key(snapshot.scope)] = snapshot

    def invalidate(self, scope: int | None) -> None:
        with self._lock:
            self._entries.pop(scope_key(scope), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
