"""
Schemas for the inbound stock webhook and the stock/purchase-price update paths.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stocksync.schemas.base import BaseSchema


class WebhookData(BaseModel):
    # Plugins send extra keys (stock_status, items, order_status); keep them
    model_config = ConfigDict(extra="allow")

    product_id: Optional[int] = None
    variation_id: Optional[int] = None
    sku: Optional[str] = None
    stock_quantity: Optional[int] = None
    order_id: Optional[int] = None
    purchase_price: Optional[float] = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(..., examples=["stock.updated"])
    store_url: str = Field(..., examples=["https://mystore.com"])
    timestamp: str = Field(..., examples=["2024-01-19T12:00:00Z"])
    signature: Optional[str] = None
    data: WebhookData = Field(default_factory=WebhookData)


class WebhookResponse(BaseModel):
    success: bool
    synced: int = 0
    message: str


class StockUpdateRequest(BaseModel):
    quantity: int
    sync_to_remote: bool = True


class PurchasePriceUpdateRequest(BaseModel):
    price: float = Field(..., ge=0)
    sync_to_remote: bool = True


class StockUpdateResult(BaseModel):
    """Outcome of a local and/or remote stock or price write. Inspect `success`."""
    success: bool
    product_id: Optional[int] = None
    variation_id: Optional[int] = None
    remote_id: Optional[int] = None
    new_stock: Optional[int] = None
    purchase_price: Optional[float] = None
    error: Optional[str] = None


class WebhookLogRead(BaseSchema):
    id: int
    store_id: Optional[int] = None
    event_type: str
    direction: str
    payload: dict
    status: str
    error_message: Optional[str] = None
    remote_id: Optional[int] = None
    product_id: Optional[int] = None
    created_at: datetime


class EventCount(BaseModel):
    event: str
    count: int


class WebhookStats(BaseModel):
    total: int
    successful: int
    failed: int
    success_rate: int
    by_event: List[EventCount]
