"""
Dashboard edits of stock and purchase price.

Each edit is applied locally and pushed to the item's own store. Mapped
siblings are updated when that store's webhook comes back.
"""

from fastapi import APIRouter, Depends, HTTPException

from stocksync.core.exceptions import ProductNotFoundError, VariationNotFoundError
from stocksync.dependencies import get_stock_sync_service
from stocksync.schemas.webhook import PurchasePriceUpdateRequest, StockUpdateRequest, StockUpdateResult
from stocksync.services.stock_sync_service import StockSyncService

router = APIRouter()


@router.post("/{product_id}/stock", response_model=StockUpdateResult)
async def update_product_stock(
    product_id: int,
    body: StockUpdateRequest,
    service: StockSyncService = Depends(get_stock_sync_service),
):
    try:
        return await service.update_stock_from_dashboard(product_id, body.quantity, body.sync_to_remote)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{product_id}/purchase-price", response_model=StockUpdateResult)
async def update_product_purchase_price(
    product_id: int,
    body: PurchasePriceUpdateRequest,
    service: StockSyncService = Depends(get_stock_sync_service),
):
    try:
        return await service.update_purchase_price_from_dashboard(product_id, body.price, body.sync_to_remote)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/variations/{variation_id}/stock", response_model=StockUpdateResult)
async def update_variation_stock(
    variation_id: int,
    body: StockUpdateRequest,
    service: StockSyncService = Depends(get_stock_sync_service),
):
    try:
        return await service.update_variation_stock_from_dashboard(variation_id, body.quantity, body.sync_to_remote)
    except VariationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/variations/{variation_id}/purchase-price", response_model=StockUpdateResult)
async def update_variation_purchase_price(
    variation_id: int,
    body: PurchasePriceUpdateRequest,
    service: StockSyncService = Depends(get_stock_sync_service),
):
    try:
        return await service.update_variation_purchase_price_from_dashboard(
            variation_id, body.price, body.sync_to_remote
        )
    except VariationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
