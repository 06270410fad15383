"""Serialization of pay period mutations within one process.

Two kinds of section:
- a period section per (user_id, period start), held while a period is
  created or re-aggregated;
- a user section per user_id, held for a whole bulk reassignment and for
  every direct shift assignment, so the two never interleave.

Across processes the store adds PostgreSQL advisory locks on the same keys.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from shift_payroll.database import period_lock_key, user_lock_key


class LockingService:
    """Keyed asyncio locks.

    Locks are not re-entrant. Callers take the user section first and the
    period section inside it, never the other way round. A key's lock is
    dropped once its last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def tracked(self) -> int:
        """Number of keys with a live lock."""
        return len(self._locks)

    @asynccontextmanager
    async def _section(self, key: str) -> AsyncIterator[None]:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with self._locks[key]:
                yield
        finally:
            self._refs[key] -= 1
            if not self._refs[key]:
                del self._refs[key]
                del self._locks[key]

    def user_section(self, user_id: Any):
        """Exclusive section for all period membership changes of a user."""
        return self._section(user_lock_key(user_id))

    def period_section(self, user_id: Any, start: Any):
        """Exclusive section for one (user, period start) pair."""
        return self._section(period_lock_key(user_id, start))

    def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
