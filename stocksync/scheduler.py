"""
Scheduled tasks for the sync engine.

Runs inside the FastAPI process: a periodic catalog pull for every store
(opt-in) and a purge of expired cooldown keys.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from stocksync.core.config import get_settings
from stocksync.database import async_session
from stocksync.dependencies import get_cooldown_cache
from stocksync.services.catalog_sync_service import CatalogSyncService
from stocksync.services.cooldown import purge_expired

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def sync_all_catalogs_task():
    """Pull the catalog of every store"""
    try:
        logger.info("=== SCHEDULED CATALOG SYNC STARTING ===")
        async with async_session() as db:
            results = await CatalogSyncService(db).sync_all_stores()
        failed = [r.store_id for r in results if not r.success]
        logger.info(f"Scheduled catalog sync finished: {len(results)} stores, failed: {failed or 'none'}")
    except Exception as e:
        logger.exception(f"Error in scheduled catalog sync: {str(e)}")


async def purge_cooldowns_task():
    """Drop cooldown keys older than the sync window"""
    try:
        window = timedelta(seconds=get_settings().SYNC_COOLDOWN_SECONDS)
        removed = await purge_expired(get_cooldown_cache(), window)
        if removed:
            logger.info(f"Purged {removed} expired cooldown keys")
    except Exception as e:
        logger.exception(f"Error purging cooldown keys: {str(e)}")


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    scheduler.add_job(
        purge_cooldowns_task,
        IntervalTrigger(minutes=settings.COOLDOWN_PURGE_MINUTES),
        id="purge_cooldowns",
        name="Purge Expired Cooldowns",
        replace_existing=True,
        max_instances=1
    )

    if settings.CATALOG_SYNC_ENABLED:
        scheduler.add_job(
            sync_all_catalogs_task,
            CronTrigger.from_crontab(settings.CATALOG_SYNC_SCHEDULE),
            id="sync_all_catalogs",
            name="Sync All Store Catalogs",
            replace_existing=True,
            max_instances=1,  # Only one catalog pull at a time
            misfire_grace_time=3600
        )
        logger.info(f"Catalog sync job added with schedule: {settings.CATALOG_SYNC_SCHEDULE}")
    else:
        logger.info("Scheduled catalog sync is disabled. Set CATALOG_SYNC_ENABLED=true to enable")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped successfully")
    scheduler = None


def get_scheduler_status():
    """Current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in scheduler.get_jobs()
        ],
    }
