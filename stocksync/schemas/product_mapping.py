"""
Schemas for product mappings, suggestions and consolidated inventory.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from stocksync.schemas.base import BaseSchema


class MappingCreate(BaseModel):
    master_sku: str = Field(..., min_length=1)
    name: Optional[str] = None
    product_ids: List[int] = Field(..., min_length=2)

    @field_validator('master_sku')
    @classmethod
    def strip_master_sku(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('master_sku must not be blank')
        return v


class MappingUpdate(BaseModel):
    master_sku: Optional[str] = None
    name: Optional[str] = None


class MappingProductsChange(BaseModel):
    product_ids: List[int] = Field(..., min_length=1)


class AutoMatchRequest(BaseModel):
    store_ids: Optional[List[int]] = None


class AutoMatchResult(BaseModel):
    created: int
    skipped: int


class DismissSuggestionRequest(BaseModel):
    suggestion_key: str = Field(..., min_length=1)


class MappingItemRead(BaseSchema):
    id: int
    store_id: int
    store_name: str
    product_id: int
    product_name: str
    sku: Optional[str] = None
    stock_quantity: int
    price: float
    is_source: bool


class MappingRead(BaseSchema):
    id: int
    master_sku: str
    name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[MappingItemRead]
    total_stock: int
    real_stock: int  # Effective stock of the source item
    store_count: int


class SuggestionProduct(BaseModel):
    id: int
    store_id: int
    store_name: str
    name: str
    sku: str
    stock_quantity: int
    price: float


class MappingSuggestion(BaseModel):
    master_sku: str
    suggestion_key: str
    products: List[SuggestionProduct]
    store_count: int
    total_stock: int
    real_stock: int  # Effective stock of the first product, the provisional source


class ProductSearchResult(BaseModel):
    id: int
    store_id: int
    store_name: str
    name: str
    sku: Optional[str] = None
    stock_quantity: int
    price: float
    is_already_mapped: bool
    mapping_id: Optional[int] = None


class StoreStock(BaseModel):
    store_id: int
    store_name: str
    stock: int


class ConsolidatedInventoryItem(BaseModel):
    master_sku: str
    name: Optional[str] = None
    mapping_id: int
    total_stock: int
    stores: List[StoreStock]
