# tests/test_routes/test_health_routes.py
import pytest

from stocksync import scheduler as scheduler_module


@pytest.mark.asyncio
async def test_health_needs_no_auth(async_client):
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "Stock Sync Engine"}


@pytest.mark.asyncio
async def test_scheduler_status_before_start(async_client, monkeypatch):
    monkeypatch.setattr(scheduler_module, "scheduler", None)

    response = await async_client.get("/health/scheduler")

    assert response.json() == {"status": "not_initialized", "jobs": []}


@pytest.mark.asyncio
async def test_scheduler_jobs(monkeypatch):
    monkeypatch.setattr(scheduler_module, "scheduler", None)

    created = scheduler_module.create_scheduler()

    assert [job.id for job in created.get_jobs()] == ["purge_cooldowns"]
    monkeypatch.setattr(scheduler_module, "scheduler", None)
