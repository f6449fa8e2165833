"""Per-key serialization of ledger submissions."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLocks:
    """
    Registry of asyncio locks keyed by an arbitrary string.

    Used to keep one in-flight transaction per source account (sequence numbers
    must be consumed in order) and one in-flight payout per student task.
    Locks are process-local; multiple workers need a shared lock instead.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self.lock_for(key):
            yield


# Payout eligibility check and submission happen under the task's lock
task_locks = KeyedLocks()
