"""
Per-tournament serialization.

Every mutating engine operation runs inside locked_transaction(): the
tournament's asyncio lock is held while the transaction is open, and the
transaction is committed or rolled back before the lock is released.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# An entry lives only while some operation still references its lock
_tournament_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()
_lock_lock = asyncio.Lock()  # Lock for creating tournament locks


async def get_tournament_lock(tournament_id: int) -> asyncio.Lock:
    """Get or create a lock for a specific tournament."""
    async with _lock_lock:
        lock = _tournament_locks.get(tournament_id)
        if lock is None:
            lock = asyncio.Lock()
            _tournament_locks[tournament_id] = lock
        return lock


def reset_tournament_locks() -> None:
    """Drop all locks; asyncio locks bind to the loop that first waits on them."""
    global _lock_lock
    _tournament_locks.clear()
    _lock_lock = asyncio.Lock()


@asynccontextmanager
async def locked_transaction(db: AsyncSession, tournament_id: int):
    """
    Hold the tournament lock for one all-or-nothing unit of work.

    Commits on normal exit, rolls back on any exception and re-raises.
    """
    lock = await get_tournament_lock(tournament_id)
    async with lock:
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise
