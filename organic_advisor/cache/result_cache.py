"""
Per-user daily action cache with request coalescing.

Keyed by ``CacheKey(user_id, context_day)``.  Each entry expires at the
earlier of ``stored_at + ttl`` and the end of ``context_day`` (UTC midnight),
so yesterday's action is never served today.  Expiry is lazy: entries are
checked on read and can be swept with ``purge_expired()``; there are no
timers.

Coalescing
----------
At most one computation runs per key.  The first caller on a miss starts an
``asyncio.Task``; concurrent callers for the same key await that same task.
Each waiter awaits it through ``asyncio.shield`` so a cancelled caller does
not cancel the shared computation.  A failed computation is not stored and
its exception reaches every waiter.

The cache is not thread-safe; it belongs to one event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Optional

from organic_advisor.models.action import ActionInstance
from organic_advisor.utils.time_utils import end_of_day, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class CacheKey:
    user_id: str
    context_day: date


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    action: ActionInstance
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ActionCache:
    """In-memory ``CacheKey → ActionInstance`` store.

    Args:
        ttl_seconds: Maximum entry age.
        clock:       Returns the current UTC time; injectable for tests.
    """

    def __init__(self, ttl_seconds: int = 3600, clock: Optional[Clock] = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}.")
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock: Clock = clock or utcnow
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._inflight: dict[CacheKey, asyncio.Task[ActionInstance]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> Optional[ActionInstance]:
        """Return the live entry for ``key``, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug("Cache entry expired for %s/%s", key.user_id, key.context_day)
            return None
        return entry.action

    def put(self, key: CacheKey, action: ActionInstance) -> CacheEntry:
        now = self._clock()
        expires_at = min(now + self.ttl, end_of_day(key.context_day))
        entry = CacheEntry(key=key, action=action, expires_at=expires_at)
        self._entries[key] = entry
        return entry

    async def compute_and_store(
        self,
        key: CacheKey,
        compute_fn: Callable[[], Awaitable[ActionInstance]],
    ) -> ActionInstance:
        """Return the cached action, or compute it once for all concurrent callers.

        Raises:
            Whatever ``compute_fn`` raises; nothing is cached in that case.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, compute_fn))
            self._inflight[key] = task
        else:
            logger.debug("Coalescing request for %s/%s", key.user_id, key.context_day)
        return await asyncio.shield(task)

    async def _run(
        self,
        key: CacheKey,
        compute_fn: Callable[[], Awaitable[ActionInstance]],
    ) -> ActionInstance:
        try:
            action = await compute_fn()
            self.put(key, action)
            return action
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, key: CacheKey) -> bool:
        """Drop the entry for ``key``.  Returns ``True`` if one existed."""
        return self._entries.pop(key, None) is not None

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry for ``user_id``.  Returns the number removed."""
        keys = [k for k in self._entries if k.user_id == user_id]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def purge_expired(self) -> int:
        """Remove all expired entries.  Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("Purged %d expired cache entr(ies)", len(expired))
        return len(expired)
