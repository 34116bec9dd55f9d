"""
In-process registry of per-draft locks.

Every mutation of a stored draft (section upsert, whole-tree replace,
reference update) runs under the lock of that draft, so read-modify-write
cycles on the same draft never interleave.  Concurrent upserts of the same
section therefore resolve last-write-wins in lock-acquisition order.

Usage
-----
    from app.services.draft_locks import draft_locks

    async with draft_locks.hold(draft_id):
        ...  # load, mutate, save
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lock registry (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class DraftLockRegistry:
    """Hands out one asyncio.Lock per draft id."""

    _locks: Dict[str, asyncio.Lock] = {}
    _waiters: Dict[str, int] = {}

    @classmethod
    def is_locked(cls, draft_id: str) -> bool:
        lock = cls._locks.get(draft_id)
        return lock is not None and lock.locked()

    @classmethod
    @asynccontextmanager
    async def hold(cls, draft_id: str) -> AsyncIterator[None]:
        """Acquire the lock of *draft_id* for the duration of the block."""
        lock = cls._locks.setdefault(draft_id, asyncio.Lock())
        cls._waiters[draft_id] = cls._waiters.get(draft_id, 0) + 1
        try:
            async with lock:
                logger.debug("Draft %s locked", draft_id)
                yield
        finally:
            cls._release(draft_id)

    @classmethod
    def _release(cls, draft_id: str) -> None:
        """Forget the lock once nobody holds or waits for it."""
        remaining = cls._waiters.get(draft_id, 1) - 1
        if remaining <= 0:
            cls._waiters.pop(draft_id, None)
            cls._locks.pop(draft_id, None)
        else:
            cls._waiters[draft_id] = remaining


# Module-level singleton instance
draft_locks = DraftLockRegistry
