"""
Loop suppression for stock propagation.

When store A pushes a quantity to store B, B's own webhook fires back for the
same item. The coordinator records "<store>:<p|v>:<remote id>" after each
applied change and ignores further changes for that key inside the window.

The cache sits behind CooldownCache so a process-local dict can be replaced by
a shared table in multi-worker deployments.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stocksync.core.enums import ItemKind
from stocksync.core.utils import ensure_utc, utcnow
from stocksync.models.sync_cooldown import SyncCooldown

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def cooldown_key(store_id: int, kind: ItemKind, remote_id: int) -> str:
    return f"{store_id}:{kind.value}:{remote_id}"


class CooldownCache(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[datetime]:
        """Time the key was last applied, or None"""
        pass

    @abstractmethod
    async def set(self, key: str, at: datetime) -> None:
        pass

    @abstractmethod
    async def purge(self, older_than: datetime) -> int:
        """Drop keys applied before the given time, returning how many went"""
        pass

    async def is_cooling_down(self, key: str, now: datetime, window: timedelta) -> bool:
        applied_at = await self.get(key)
        if applied_at is None:
            return False
        return now - ensure_utc(applied_at) < window


class InMemoryCooldownCache(CooldownCache):
    """Process-local cache. Correct only for a single worker."""

    def __init__(self):
        self._entries: Dict[str, datetime] = {}

    async def get(self, key):
        return self._entries.get(key)

    async def set(self, key, at):
        self._entries[key] = at

    async def purge(self, older_than):
        stale = [key for key, at in self._entries.items() if ensure_utc(at) < older_than]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self):
        return len(self._entries)


class DatabaseCooldownCache(CooldownCache):
    """
    Cooldown keys in the sync_cooldowns table, visible to every worker.

    Uses its own short sessions so cache writes never ride along with, or get
    rolled back by, the caller's unit of work.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get(self, key):
        async with self.session_factory() as session:
            result = await session.execute(select(SyncCooldown.applied_at).where(SyncCooldown.key == key))
            applied_at = result.scalar_one_or_none()
        return ensure_utc(applied_at)

    async def set(self, key, at):
        async with self.session_factory() as session:
            entry = await session.get(SyncCooldown, key)
            if entry is None:
                session.add(SyncCooldown(key=key, applied_at=at))
            else:
                entry.applied_at = at
            await session.commit()

    async def purge(self, older_than):
        async with self.session_factory() as session:
            result = await session.execute(delete(SyncCooldown).where(SyncCooldown.applied_at < older_than))
            await session.commit()
        return result.rowcount or 0


async def purge_expired(cache: CooldownCache, window: timedelta, clock: Clock = utcnow) -> int:
    removed = await cache.purge(clock() - window)
    if removed:
        logger.debug(f"Purged {removed} expired cooldown keys")
    return removed
