"""
Store onboarding and per-store operations: credentials, connector checks,
catalog pulls, deletion and the webhook audit trail.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stocksync.core.exceptions import StoreNotFoundError, SyncError, ValidationError
from stocksync.dependencies import get_catalog_sync_service, get_stock_sync_service, get_store_service
from stocksync.integrations.base import ConnectionCheck
from stocksync.schemas.store import CatalogSyncResult, StoreCreate, StoreCredentialsUpdate, StoreWithSecret
from stocksync.schemas.webhook import WebhookLogRead, WebhookStats
from stocksync.services.catalog_sync_service import CatalogSyncService
from stocksync.services.stock_sync_service import StockSyncService
from stocksync.services.store_service import StoreService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stores"])


@router.post("/companies/{company_id}/stores", response_model=StoreWithSecret, status_code=201)
async def create_store(
    company_id: int,
    body: StoreCreate,
    service: StoreService = Depends(get_store_service),
):
    try:
        return await service.create_store(company_id, body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/stores/{store_id}/credentials", response_model=StoreWithSecret)
async def update_store_credentials(
    store_id: int,
    body: StoreCredentialsUpdate,
    service: StoreService = Depends(get_store_service),
):
    try:
        return await service.update_credentials(store_id, body)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/stores/{store_id}/verify", response_model=ConnectionCheck)
async def verify_store_connector(store_id: int, service: StoreService = Depends(get_store_service)):
    try:
        return await service.verify_connector(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/stores/{store_id}/verify-commerce", response_model=ConnectionCheck)
async def verify_store_commerce(store_id: int, service: StoreService = Depends(get_store_service)):
    try:
        return await service.verify_commerce(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/stores/{store_id}/sync", response_model=CatalogSyncResult)
async def sync_store_catalog(store_id: int, service: CatalogSyncService = Depends(get_catalog_sync_service)):
    try:
        return await service.sync_store(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/stores/{store_id}")
async def delete_store(store_id: int, service: StoreService = Depends(get_store_service)):
    try:
        removed, dropped = await service.delete_store(store_id)
    except StoreNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "status": "success",
        "store_id": store_id,
        "mapping_items_removed": removed,
        "mappings_deleted": dropped,
    }


@router.get("/stores/{store_id}/webhook-logs", response_model=List[WebhookLogRead])
async def get_webhook_logs(
    store_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: StockSyncService = Depends(get_stock_sync_service),
):
    return await service.get_webhook_logs(store_id, limit)


@router.get("/stores/{store_id}/webhook-stats", response_model=WebhookStats)
async def get_webhook_stats(
    store_id: int,
    days: int = Query(7, ge=1, le=365),
    service: StockSyncService = Depends(get_stock_sync_service),
):
    return await service.get_webhook_stats(store_id, days)
