# tests/unit/test_scheduler.py
import logging
from datetime import timedelta

import pytest

from stocksync import scheduler as scheduler_module
from stocksync.core.utils import utcnow
from stocksync.schemas.store import CatalogSyncResult
from stocksync.services.cooldown import InMemoryCooldownCache


@pytest.mark.asyncio
async def test_catalog_task_runs_every_store(mocker, caplog):
    service_cls = mocker.patch("stocksync.scheduler.CatalogSyncService")
    service_cls.return_value.sync_all_stores = mocker.AsyncMock(return_value=[
        CatalogSyncResult(store_id=1, products=3),
        CatalogSyncResult(store_id=2, success=False, error="Authentication failed"),
    ])

    with caplog.at_level(logging.INFO, logger="stocksync.scheduler"):
        await scheduler_module.sync_all_catalogs_task()

    service_cls.return_value.sync_all_stores.assert_awaited_once()
    assert "2 stores, failed: [2]" in caplog.text


@pytest.mark.asyncio
async def test_catalog_task_never_raises(mocker, caplog):
    service_cls = mocker.patch("stocksync.scheduler.CatalogSyncService")
    service_cls.return_value.sync_all_stores = mocker.AsyncMock(side_effect=RuntimeError("db gone"))

    await scheduler_module.sync_all_catalogs_task()

    assert "db gone" in caplog.text


@pytest.mark.asyncio
async def test_purge_task_drops_expired_keys(mocker):
    cache = InMemoryCooldownCache()
    await cache.set("1:p:1", utcnow() - timedelta(hours=1))
    await cache.set("1:p:2", utcnow())
    mocker.patch("stocksync.scheduler.get_cooldown_cache", return_value=cache)

    await scheduler_module.purge_cooldowns_task()

    assert await cache.get("1:p:1") is None
    assert await cache.get("1:p:2") is not None


@pytest.mark.asyncio
async def test_catalog_job_is_opt_in(mocker, monkeypatch):
    settings = mocker.patch("stocksync.scheduler.get_settings").return_value
    settings.COOLDOWN_PURGE_MINUTES = 10
    settings.CATALOG_SYNC_ENABLED = True
    settings.CATALOG_SYNC_SCHEDULE = "0 * * * *"
    monkeypatch.setattr(scheduler_module, "scheduler", None)

    created = scheduler_module.create_scheduler()

    assert sorted(job.id for job in created.get_jobs()) == ["purge_cooldowns", "sync_all_catalogs"]
    monkeypatch.setattr(scheduler_module, "scheduler", None)
