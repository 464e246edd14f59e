# tests/unit/services/test_cooldown.py
from datetime import timedelta

import pytest

from stocksync.core.enums import ItemKind
from stocksync.services.cooldown import (
    DatabaseCooldownCache,
    InMemoryCooldownCache,
    cooldown_key,
    purge_expired,
)

WINDOW = timedelta(minutes=5)


def test_cooldown_key_format():
    assert cooldown_key(3, ItemKind.PRODUCT, 101) == "3:p:101"
    assert cooldown_key(3, ItemKind.VARIATION, 1001) == "3:v:1001"


@pytest.fixture(params=["memory", "database"])
def cache(request, session_factory):
    if request.param == "memory":
        return InMemoryCooldownCache()
    return DatabaseCooldownCache(session_factory)


@pytest.mark.asyncio
async def test_window_is_exclusive_of_expiry(cache, clock):
    key = cooldown_key(1, ItemKind.PRODUCT, 10)
    assert await cache.is_cooling_down(key, clock(), WINDOW) is False

    await cache.set(key, clock())
    clock.advance(299)
    assert await cache.is_cooling_down(key, clock(), WINDOW) is True

    clock.advance(1)
    assert await cache.is_cooling_down(key, clock(), WINDOW) is False


@pytest.mark.asyncio
async def test_set_overwrites_previous_time(cache, clock):
    key = cooldown_key(1, ItemKind.VARIATION, 20)
    await cache.set(key, clock())
    clock.advance(600)
    await cache.set(key, clock())

    assert await cache.get(key) == clock()
    assert await cache.is_cooling_down(key, clock(), WINDOW) is True


@pytest.mark.asyncio
async def test_purge_expired_drops_only_old_keys(cache, clock):
    await cache.set("1:p:1", clock())
    clock.advance(400)
    await cache.set("1:p:2", clock())

    removed = await purge_expired(cache, WINDOW, clock)

    assert removed == 1
    assert await cache.get("1:p:1") is None
    assert await cache.get("1:p:2") == clock()


def test_in_memory_cache_is_per_instance():
    assert len(InMemoryCooldownCache()) == 0
