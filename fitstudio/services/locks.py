"""
Keyed serialization points for check-then-act sequences.

CONCURRENCY STRATEGY: Per-key mutex + row locks
===============================================

Problem:
  Join reads the term's active count, reads the member's weekly count, then
  writes a booking. Two joins racing on the last free seat both observe
  `active < capacity` and both insert. The same happens across two terms of
  one week for the weekly quota, and for two term writers that both pass the
  overlap check.

Solution:
  1. In-process: one asyncio.Lock per key ("term:12", "user:7", "schedule").
     Callers acquire keys through `hold()`, which sorts them so two requests
     needing the same pair can never deadlock.
  2. Cross-process: inside the transaction the services also take
     SELECT ... FOR UPDATE on the user and term rows. On PostgreSQL that
     serializes workers in other processes; on SQLite it is a no-op and the
     in-process lock is the only guard (tests run a single process).

  The transaction must commit before `hold()` exits, otherwise the next
  waiter reads the pre-commit state.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text


class KeyedLock:
    """A family of asyncio locks addressed by string key, created on demand."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        registered: list[str] = []
        held: list[str] = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] = self._waiters.get(key, 0) + 1
                registered.append(key)
                await lock.acquire()
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                self._locks[key].release()
            for key in registered:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    # Nobody holds or waits on it; drop it so the map stays bounded
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def term_key(term_id: int) -> str:
    return f"term:{term_id}"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


SCHEDULE_KEY = "schedule"

# Process-wide instance shared by all services
reservation_locks = KeyedLock()


# Arbitrary constant identifying the schedule in pg_advisory_xact_lock
SCHEDULE_ADVISORY_LOCK_ID = 724_011


async def lock_schedule(db) -> None:
    """
    Cross-process counterpart of SCHEDULE_KEY for PostgreSQL: a transaction
    scoped advisory lock released on commit or rollback. No-op elsewhere.
    """
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_id)"),
            {"lock_id": SCHEDULE_ADVISORY_LOCK_ID},
        )
