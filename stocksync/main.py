# stocksync/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from stocksync.core.config import get_settings
from stocksync.core.logging_config import configure_logging
from stocksync.core.security import require_auth
from stocksync.database import async_session
from stocksync.routes import health, inventory, mappings, stores
from stocksync.routes.webhooks import router as webhook_router
from stocksync.scheduler import start_scheduler, stop_scheduler
from stocksync.services.catalog_sync_service import CatalogSyncService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # A restart mid-pull leaves stores flagged as syncing forever otherwise
    try:
        async with async_session() as db:
            await CatalogSyncService(db).reset_stuck_syncs()
    except Exception as e:
        logger.error(f"Could not reset stuck syncs at startup: {str(e)}")

    await start_scheduler()
    try:
        yield
    finally:
        await stop_scheduler()


app = FastAPI(
    title="Stock Sync Engine",
    debug=get_settings().DEBUG,
    lifespan=lifespan
)


# Add middleware to handle HTTPS behind proxy
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    if request.headers.get("x-forwarded-proto") == "https":
        request.scope["scheme"] = "https"
    return await call_next(request)


# Dashboard routes require authentication
app.include_router(inventory.router, prefix="/inventory", tags=["inventory"], dependencies=[require_auth()])
app.include_router(mappings.router, dependencies=[require_auth()])
app.include_router(stores.router, dependencies=[require_auth()])
app.include_router(webhook_router)  # Webhooks authenticate by signature
app.include_router(health.router)  # Health check should be accessible without auth
