"""
Schemas for store onboarding and catalog sync.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from stocksync.schemas.base import BaseSchema


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    consumer_key: str = Field(..., min_length=1)
    consumer_secret: str = Field(..., min_length=1)
    connector_api_key: Optional[str] = None
    connector_api_secret: Optional[str] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        v = v.strip().rstrip('/')
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Store URL must start with http:// or https://')
        return v


class StoreCredentialsUpdate(BaseModel):
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    connector_api_key: Optional[str] = None
    connector_api_secret: Optional[str] = None
    disable_stock_connector: bool = False
    regenerate_webhook_secret: bool = False


class StoreRead(BaseSchema):
    id: int
    company_id: int
    name: str
    url: str
    status: str
    has_stock_connector: bool
    is_syncing: bool
    last_sync_at: Optional[datetime] = None
    connector_last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime


class StoreWithSecret(StoreRead):
    """Returned once on creation or rotation so the plugin can be configured"""
    webhook_secret: Optional[str] = None


class CatalogSyncResult(BaseModel):
    store_id: int
    products: int = 0
    variations: int = 0
    success: bool = True
    error: Optional[str] = None
