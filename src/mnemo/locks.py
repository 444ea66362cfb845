"""
Per-memory-id asyncio locks.

Merges acquire the locks of every id they touch, in sorted order, so two
in-process merges over overlapping ids run one after the other. A lock is
dropped from the map once its last holder or waiter is done with it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List


class MemoryLocks:
    """Map of memory id -> asyncio.Lock, created on demand."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, memory_id: str) -> asyncio.Lock:
        if memory_id not in self._locks:
            self._locks[memory_id] = asyncio.Lock()
        self._users[memory_id] = self._users.get(memory_id, 0) + 1
        return self._locks[memory_id]

    def _checkin(self, memory_id: str) -> None:
        self._users[memory_id] -= 1
        if self._users[memory_id] == 0:
            del self._users[memory_id]
            del self._locks[memory_id]

    def is_locked(self, memory_id: str) -> bool:
        lock = self._locks.get(memory_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, memory_ids: Iterable[str]):
        """Hold the locks of all memory_ids for the duration of the block."""
        ordered = sorted(set(memory_ids))
        acquired: List[str] = []
        try:
            for memory_id in ordered:
                lock = self._checkout(memory_id)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(memory_id)
                    raise
                acquired.append(memory_id)
            yield
        finally:
            for memory_id in reversed(acquired):
                self._locks[memory_id].release()
                self._checkin(memory_id)
